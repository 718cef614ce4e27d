"""Post-crawl broken internal link detection over the collected link graph."""

import logging
from typing import AbstractSet, List, Mapping

from ..models.issues import Issue, IssueCategory, IssueSeverity
from ..models.results import PageResult


logger = logging.getLogger(__name__)


def find_broken_internal_links(
    pages: Mapping[str, PageResult],
    declined: AbstractSet[str],
    max_listed: int = 10
) -> List[Issue]:
    """Cross-reference every page's internal links against the crawl results.

    A link target counts as broken when it was crawled and failed (status 0
    or >= 400), or when it was never crawled although no crawl rule excluded
    it. Targets left out on purpose (depth, scope, robots, page budget) are in
    ``declined`` and are not reported.

    Args:
        pages: PageResults keyed by normalized URL
        declined: URLs the crawl deliberately did not visit
        max_listed: Number of targets named in each description

    Returns:
        One critical issue per source page with broken links, ordered by URL
    """
    issues: List[Issue] = []
    for url in sorted(pages):
        page = pages[url]
        broken: List[str] = []
        for target in page.internal_links:
            if target == url:
                continue
            result = pages.get(target)
            if result is not None:
                if result.is_error:
                    broken.append(f"{target} (HTTP {result.status_code or 'no response'})")
            elif target not in declined:
                broken.append(f"{target} (not reachable)")

        if not broken:
            continue
        listed = ', '.join(broken[:max_listed])
        more = f" and {len(broken) - max_listed} more" if len(broken) > max_listed else ""
        issues.append(Issue(
            type="broken_internal_links",
            severity=IssueSeverity.CRITICAL,
            description=f"{len(broken)} broken internal link(s): {listed}{more}",
            recommendation="Update or remove links to pages that fail to load.",
            category=IssueCategory.TECHNICAL,
            affected_urls=[url],
        ))

    if issues:
        logger.info(f"Found broken internal links on {len(issues)} page(s)")
    return issues
