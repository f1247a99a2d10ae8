"""CLI entry point for igitt.

  igitt KEYWORDS_YAML --github TOKEN --gitlab TOKEN           review commits interactively
  igitt KEYWORDS_YAML --github TOKEN --gitlab TOKEN -e [-c]   print (and export) the evaluation
"""

from __future__ import annotations

import logging

import click

from igitt_cli.commands.evaluate import run_evaluation
from igitt_cli.commands.review import run_review_session
from igitt_core.remote.hosts import GitHubHost, GitLabHost, OriginParseError, UnsupportedHostError
from igitt_store.base import IgittError
from igitt_store.yaml_store import YamlStore

_AFTER_HELP = """\b
Get a GitHub access token here (no scopes needed):
    https://github.com/settings/tokens

Get a GitLab access token here (scope api):
    https://gitlab.com/profile/personal_access_tokens
"""


@click.command(epilog=_AFTER_HELP)
@click.version_option(package_name="igitt", prog_name="igitt")
@click.argument("keywords_yaml", metavar="KEYWORDS_YAML", type=click.Path(dir_okay=False))
@click.option("--github", "github_token", metavar="TOKEN", default=None, help="Sets the GitHub API Token.")
@click.option("--gitlab", "gitlab_token", metavar="TOKEN", default=None, help="Sets the GitLab API Token.")
@click.option(
    "--evaluate",
    "-e",
    is_flag=True,
    help="Evaluates true positives, false positives, and unsure values.",
)
@click.option(
    "--csv",
    "-c",
    "csv_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Saves the evaluation result as csv to PATH (requires --evaluate).",
)
@click.option(
    "--config",
    "config_path",
    default=".igitt.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="IGITT_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
def main(
    keywords_yaml: str,
    github_token: str | None,
    gitlab_token: str | None,
    evaluate: bool,
    csv_path: str | None,
    config_path: str,
    verbose: bool,
):
    """Rate commits listed in KEYWORDS_YAML as refactoring or not."""
    from igitt_cli.auth import resolve_github_token, resolve_gitlab_token
    from igitt_core.config import load_config

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    if csv_path and not evaluate:
        raise click.UsageError("--csv can only be used together with --evaluate.")

    config = load_config(config_path, cli_overrides={"github_token": github_token, "gitlab_token": gitlab_token})

    github = resolve_github_token(config.get("github_token"))
    if not github:
        raise click.UsageError(
            "No GitHub token found. Pass --github TOKEN, set GITHUB_TOKEN or run `gh auth login` first."
        )
    gitlab = resolve_gitlab_token(config.get("gitlab_token"))
    if not gitlab:
        raise click.UsageError("No GitLab token found. Pass --gitlab TOKEN or set GITLAB_TOKEN.")

    try:
        if evaluate:
            run_evaluation(YamlStore(keywords_yaml).load(), csv_path)
            return
        run_review_session(
            keywords_yaml,
            config,
            tokens={GitHubHost.DOMAIN: github, GitLabHost.DOMAIN: gitlab},
        )
    except (IgittError, OriginParseError, UnsupportedHostError) as e:
        raise click.ClickException(str(e)) from e
