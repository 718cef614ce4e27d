"""Accessibility extraction using axe-core injected into the live page."""

import logging
from typing import Any, Dict, List, Optional

from ..capture.page import RenderedPage
from ..models.crawl import AXE_CORE_URL
from ..models.extraction import AccessibilityData, AccessibilityViolation


logger = logging.getLogger(__name__)


IMPACT_PENALTIES = {
    'critical': 25,
    'serious': 15,
    'moderate': 10,
    'minor': 5,
}

AXE_SCRIPT = """async (scriptUrl) => {
    if (!window.axe) {
        await new Promise((resolve, reject) => {
            const script = document.createElement('script');
            script.src = scriptUrl;
            script.onload = resolve;
            script.onerror = () => reject(new Error('failed to load ' + scriptUrl));
            document.head.appendChild(script);
        });
    }
    const results = await window.axe.run(document, { resultTypes: ['violations'] });
    return {
        passes: results.passes ? results.passes.length : 0,
        violations: results.violations.map((v) => ({
            id: v.id,
            impact: v.impact,
            description: v.description,
            help_url: v.helpUrl,
            selectors: v.nodes.map((n) => [].concat(n.target).join(' ')),
        })),
    };
}"""


def calculate_accessibility_score(violations: List[AccessibilityViolation]) -> int:
    """100 minus the impact penalty of every violation, floored at 0."""
    penalty = sum(IMPACT_PENALTIES.get(v.impact, IMPACT_PENALTIES['minor']) for v in violations)
    return max(0, 100 - penalty)


def build_accessibility_data(raw: Optional[Dict[str, Any]]) -> AccessibilityData:
    raw = raw or {}
    violations = []
    for entry in raw.get('violations') or []:
        if not isinstance(entry, dict):
            continue
        impact = str(entry.get('impact') or 'minor').lower()
        violations.append(AccessibilityViolation(
            rule_id=str(entry.get('id') or ''),
            impact=impact if impact in IMPACT_PENALTIES else 'minor',
            description=str(entry.get('description') or ''),
            help_url=entry.get('help_url'),
            selectors=[str(s) for s in entry.get('selectors') or []],
        ))
    passes = raw.get('passes')
    return AccessibilityData(
        violations=violations,
        passes=passes if isinstance(passes, int) else 0,
        score=calculate_accessibility_score(violations),
    )


async def extract_accessibility_data(page: RenderedPage, script_url: str = AXE_CORE_URL) -> Optional[AccessibilityData]:
    """Run axe-core against the rendered DOM.

    A page without an execution context, or a failure to load the engine, is
    reported as unavailable (None) rather than as an error.
    """
    if not page.can_evaluate:
        return None
    try:
        raw = await page.evaluate(AXE_SCRIPT, script_url)
    except Exception as e:
        logger.warning(f"Accessibility engine unavailable for {page.url}: {e}")
        return None
    if not isinstance(raw, dict):
        return None
    return build_accessibility_data(raw)
