"""Build provenance collected from CI provider variables or the local git checkout."""

from __future__ import annotations

import logging
import subprocess
import time
from typing import Callable, Dict, Mapping, Optional, Sequence

from .errors import ExecError
from .schemas.state import GIT_REF_TYPE_BRANCH, GIT_REF_TYPE_TAG, BuildMetadata

logger = logging.getLogger(__name__)

GitRunner = Callable[[Sequence[str]], str]

TRAVIS_CI = "Travis CI"
CIRCLE_CI = "CircleCI"
BITBUCKET_PIPELINES = "Bitbucket Pipelines"
JENKINS = "Jenkins"
GITLAB_CI = "GitLab CI"
GITHUB_ACTIONS = "GitHub Actions"


def run_git(args: Sequence[str]) -> str:
    """Run `git` with `args` and return stripped stdout."""

    command = ["git", *args]
    try:
        proc = subprocess.run(command, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise ExecError(command, -1, str(exc)) from exc
    if proc.returncode != 0:
        raise ExecError(command, proc.returncode, (proc.stderr or proc.stdout or "").strip())
    return proc.stdout.strip()


def _travis(env: Mapping[str, str]) -> BuildMetadata:
    return BuildMetadata(
        provider=TRAVIS_CI,
        url=f"https://travis-ci.org/{env.get('TRAVIS_REPO_SLUG', '')}/builds/{env.get('TRAVIS_BUILD_ID', '')}",
        number=env.get("TRAVIS_BUILD_NUMBER", ""),
        branch="" if env.get("TRAVIS_TAG") else env.get("TRAVIS_BRANCH", ""),
        tag=env.get("TRAVIS_TAG", ""),
        commit=env.get("TRAVIS_COMMIT", ""),
    )


def _circleci(env: Mapping[str, str]) -> BuildMetadata:
    return BuildMetadata(
        provider=CIRCLE_CI,
        url=env.get("CIRCLE_BUILD_URL", ""),
        number=env.get("CIRCLE_BUILD_NUM", ""),
        branch=env.get("CIRCLE_BRANCH", ""),
        tag=env.get("CIRCLE_TAG", ""),
        commit=env.get("CIRCLE_SHA1", ""),
        author_name=env.get("CIRCLE_USERNAME", ""),
    )


def _bitbucket(env: Mapping[str, str]) -> BuildMetadata:
    number = env.get("BITBUCKET_BUILD_NUMBER", "")
    return BuildMetadata(
        provider=BITBUCKET_PIPELINES,
        url=f"https://bitbucket.org/{env.get('BITBUCKET_REPO_SLUG', '')}/addon/pipelines/home#!/results/{number}",
        number=number,
        branch=env.get("BITBUCKET_BRANCH", ""),
        tag=env.get("BITBUCKET_TAG", ""),
        commit=env.get("BITBUCKET_COMMIT", ""),
    )


def _jenkins(env: Mapping[str, str]) -> BuildMetadata:
    return BuildMetadata(
        provider=JENKINS,
        url=env.get("BUILD_URL") or env.get("JOB_URL", ""),
        number=env.get("BUILD_NUMBER", ""),
        branch=env.get("GIT_BRANCH", ""),
        commit=env.get("GIT_COMMIT", ""),
    )


def _gitlab(env: Mapping[str, str]) -> BuildMetadata:
    return BuildMetadata(
        provider=GITLAB_CI,
        url=env.get("CI_JOB_URL", ""),
        number=env.get("CI_PIPELINE_IID", ""),
        branch=env.get("CI_COMMIT_BRANCH", ""),
        tag=env.get("CI_COMMIT_TAG", ""),
        commit=env.get("CI_COMMIT_SHA", ""),
        comment=env.get("CI_COMMIT_MESSAGE", "").strip(),
    )


def _github(env: Mapping[str, str]) -> BuildMetadata:
    is_tag = env.get("GITHUB_REF_TYPE") == GIT_REF_TYPE_TAG
    ref_name = env.get("GITHUB_REF_NAME", "")
    server = env.get("GITHUB_SERVER_URL", "https://github.com")
    return BuildMetadata(
        provider=GITHUB_ACTIONS,
        url=f"{server}/{env.get('GITHUB_REPOSITORY', '')}/actions/runs/{env.get('GITHUB_RUN_ID', '')}",
        number=env.get("GITHUB_RUN_NUMBER", ""),
        branch="" if is_tag else ref_name,
        tag=ref_name if is_tag else "",
        commit=env.get("GITHUB_SHA", ""),
        author_name=env.get("GITHUB_ACTOR", ""),
    )


# Detection variable -> extractor, checked in order.
PROVIDERS: Dict[str, Callable[[Mapping[str, str]], BuildMetadata]] = {
    "TRAVIS": _travis,
    "CIRCLECI": _circleci,
    "BITBUCKET_BUILD_NUMBER": _bitbucket,
    "JENKINS_HOME": _jenkins,
    "GITLAB_CI": _gitlab,
    "GITHUB_ACTIONS": _github,
}


def collect_build_metadata(
    environ: Mapping[str, str],
    *,
    build_number: Optional[str] = None,
    build_url: Optional[str] = None,
    provider: Optional[str] = None,
    git: GitRunner = run_git,
    now: Callable[[], float] = time.time,
) -> BuildMetadata:
    """Describe the current build from CI variables, falling back to git."""

    metadata: Optional[BuildMetadata] = None
    for variable, extractor in PROVIDERS.items():
        if environ.get(variable):
            metadata = extractor(environ)
            metadata.known = True
            break

    if metadata is None:
        metadata = BuildMetadata(known=False)
        _fill_ref_from_git(metadata, git)
        metadata.commit = _git_value(git, ["rev-parse", "HEAD"], "commit")
        metadata.number = build_number or str(int(now()))

    if metadata.commit:
        if not metadata.comment:
            metadata.comment = _git_value(git, ["log", "--format=%B", "-n", "1", metadata.commit], "commit message")
        if not metadata.author_name:
            metadata.author_name = _git_value(git, ["log", "-1", metadata.commit, "--pretty=%aN"], "commit author")
        metadata.author_email = _git_value(git, ["log", "-1", metadata.commit, "--pretty=%aE"], "commit author email")

    if build_number:
        metadata.number = build_number
    if build_url:
        metadata.url = build_url
    if provider:
        metadata.provider = provider
    return metadata


def git_ref(metadata: BuildMetadata) -> tuple[str, str]:
    """Return `(ref_type, ref)` for the build, preferring a tag."""

    if metadata.tag:
        return GIT_REF_TYPE_TAG, metadata.tag
    return GIT_REF_TYPE_BRANCH, metadata.branch


def to_ci_build_input(metadata: BuildMetadata) -> Dict[str, object]:
    """Payload describing this CI run for the new-build mutation."""

    ref_type, ref = git_ref(metadata)
    payload: Dict[str, object] = {
        "provider": metadata.provider or "unknown",
        "buildNum": int(metadata.number) if metadata.number.isdigit() else 0,
        "buildURL": metadata.url,
        "gitRefType": ref_type,
        "gitRef": ref,
        "gitCommitSHA": metadata.commit,
    }
    if metadata.comment:
        payload["gitCommitMessage"] = metadata.comment
    if metadata.author_name:
        payload["gitCommitAuthorName"] = metadata.author_name
    if metadata.author_email:
        payload["gitCommitAuthorEmail"] = metadata.author_email
    return payload


def _fill_ref_from_git(metadata: BuildMetadata, git: GitRunner) -> None:
    branch = _git_value(git, ["rev-parse", "--abbrev-ref", "HEAD"], "branch")
    if branch and branch != "HEAD":
        metadata.branch = branch
        return
    # Detached HEAD: usually a tag checkout.
    metadata.tag = _git_value(git, ["describe", "--tags"], "tag")


def _git_value(git: GitRunner, args: Sequence[str], label: str) -> str:
    try:
        return git(args).strip()
    except ExecError as exc:
        logger.warning("Failed to acquire %s info: %s", label, exc.output or exc)
        return ""
