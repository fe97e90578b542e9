"""Search query set for an industry research run."""

from __future__ import annotations

from outreach_research.models import ResearchQuery

DEFAULT_COMPANY_SIZE = "1-500"

COMPANY_SIZE_TERMS: dict[str, list[str]] = {
    "1-10": ["startup", "small business", "new company"],
    "11-50": ["growing company", "scale up", "expanding business"],
    "51-200": ["mid size company", "established business"],
    "201-500": ["medium enterprise", "larger company"],
    "1-500": ["startup", "small business", "growing company", "scale up"],
}

# (template, source, intent)
_TOPIC_TEMPLATES: list[tuple[str, str, str]] = [
    ("{industry} marketing strategies", "youtube", "general_marketing"),
    ("{industry} paid advertising tips", "youtube", "paid_ads"),
    ("{industry} email marketing best practices", "youtube", "email_marketing"),
    ("sales psychology for {industry}", "youtube", "sales_psychology"),
    ("outreach techniques for {industry}", "youtube", "outreach_techniques"),
    ("customer acquisition for {industry}", "youtube", "customer_acquisition"),
]


def build_queries(industry: str, company_size: str | None = None) -> list[ResearchQuery]:
    """Build the ordered query set for ``industry``.

    Args:
        industry: Free-text industry label.
        company_size: Employee-count bracket (``"1-10"``, ``"11-50"``,
            ``"51-200"``, ``"201-500"``, ``"1-500"``). Unknown or missing
            brackets use ``"1-500"``.

    Returns:
        Topic queries followed by company-size queries.

    Raises:
        ValueError: If ``industry`` is blank.
    """
    name = industry.strip()
    if not name:
        raise ValueError("Industry is required")

    queries = [
        ResearchQuery(term=template.format(industry=name), source=source, intent=intent)
        for template, source, intent in _TOPIC_TEMPLATES
    ]
    sizes = COMPANY_SIZE_TERMS.get(company_size or "", COMPANY_SIZE_TERMS[DEFAULT_COMPANY_SIZE])
    queries.extend(
        ResearchQuery(
            term=f"{size} {name} company", source="size_specific", intent="company_discovery"
        )
        for size in sizes
    )
    return queries
