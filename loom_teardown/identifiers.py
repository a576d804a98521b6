"""Parsing of cleanup identifiers given on the command line."""
import re

from loom_teardown.models.cleanup import CleanupRequest, IdentifierKind

ISSUE_PATTERN = re.compile(r"^issue[-_/]?(\d+)$", re.IGNORECASE)
PR_PATTERN = re.compile(r"^pr[/-](\d+)$", re.IGNORECASE)
NUMERIC_PATTERN = re.compile(r"^#?(\d+)$")


def parse_identifier(text: str) -> CleanupRequest:
    """Turn user input into a CleanupRequest.

    ``issue-12``, ``issue/12``, ``#12`` and ``12`` name an issue, ``pr-7``
    and ``pr/7`` a pull request; anything else is a branch name.

    Raises:
        ValueError: If the identifier is empty
    """
    identifier = text.strip()
    if not identifier:
        raise ValueError("Identifier cannot be empty")

    match = ISSUE_PATTERN.match(identifier)
    if match:
        return CleanupRequest(IdentifierKind.ISSUE, identifier, number=int(match.group(1)))

    match = PR_PATTERN.match(identifier)
    if match:
        return CleanupRequest(IdentifierKind.PR, identifier, number=int(match.group(1)))

    match = NUMERIC_PATTERN.match(identifier)
    if match:
        return CleanupRequest(IdentifierKind.ISSUE, identifier, number=int(match.group(1)))

    return CleanupRequest(IdentifierKind.BRANCH, identifier, branch_name=identifier)
