from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from reportlens.core.types import BusinessOverview, FinancialMetrics
from reportlens.utils.formatting import NOT_AVAILABLE, format_currency, format_number


@dataclass(frozen=True)
class StagePrompt:
    """One instruction template per stage; `version` changes with every prompt revision."""
    stage: str
    version: str
    text: str

    @property
    def key(self) -> str:
        return f"{self.stage}@{self.version}"


BUSINESS_OVERVIEW_PROMPT = StagePrompt(
    stage="business_overview",
    version="3",
    text="""
You are a business intelligence analyst preparing a solution advisor for a
discovery call. Read the attached annual report and explain what the company
does and how it makes money.

Focus on:
1. Core business model (subscription, transaction fees, product sales, services, ...)
2. Revenue streams and which segments are growing or declining
3. The KPIs management emphasises
4. Operational challenges that workforce, payroll or HR technology could affect

Output format (JSON only, no extra text):
{
  "companyOverview": "2-3 sentences on what the company does and its market position",
  "businessModel": "how the company makes money",
  "revenueStreams": ["primary stream with growth info", "..."],
  "keyMetrics": ["KPI the company emphasises", "..."],
  "operationalChallenges": ["challenge affecting the workforce", "..."],
  "hrPayrollRelevance": "where workforce management, payroll or HR technology has business impact",
  "industryClassification": "Technology | Healthcare | Financial Services | Manufacturing | Retail | ...",
  "competitivePosition": "positioning against competitors and market pressures",
  "extractionQuality": {
    "confidence": "high | medium | low",
    "completeness": "complete | partial | limited",
    "sourceQuality": "assessment of document quality and detail level"
  }
}
""".strip(),
)


FINANCIAL_PROMPT = StagePrompt(
    stage="financial",
    version="4",
    text="""
You are a financial data extraction specialist. Extract the headline
financial metrics of the attached annual report with exact figures.

Rules:
- Revenue: "revenue", "total revenue", "net revenue", "sales", "net sales", "turnover".
  Extract current and previous year when available. Prefer consolidated figures.
- Profit/loss: "net income", "net profit", "earnings" vs. "net loss", "deficit", "(loss)".
  A loss is reported as type "loss" with a negative amount.
- Employees: "employees", "headcount", "workforce", "team members".
- Assets: "total assets", "balance sheet total".
- Prefer GAAP/IFRS figures over adjusted, underlying or pro forma ones.
- If profit exceeds 50% of revenue, set confidence "low" and add "profit_exceeds_50_percent".
- Keep amounts as written with their scale ("4.2B", "-200M", "$4,241,838,000").
- sourceText must quote the sentence the figure came from.
- Use null for anything not stated. Do NOT invent or guess values.

Output format (JSON only, no extra text):
{
  "financialMetrics": {
    "revenue": {"current": "4.2B", "previous": "3.4B", "growth": "23%", "currency": "USD",
                "confidence": "high", "sourceText": "...", "extractionMethod": "direct_statement"},
    "profitLoss": {"type": "profit", "amount": "500M", "margin": "12%", "confidence": "high",
                   "sourceText": "...", "validationFlags": []},
    "employees": {"total": 50000, "previousYear": 45000, "growth": "11%", "confidence": "high",
                  "sourceText": "..."},
    "assets": {"total": "15B", "currency": "USD", "confidence": "medium", "sourceText": "..."},
    "validation": {"revenueReasonable": true, "profitMarginReasonable": true,
                   "crossCheckPassed": true, "flaggedForReview": false, "notes": ""}
  }
}
""".strip(),
)


HR_PROMPT = StagePrompt(
    stage="hr",
    version="6",
    text="""
You are analysing an annual report to help a solution advisor prepare for a
discovery call with an HR leader. Extract insights that show business
understanding and turn them into talking points.
{context_block}
Categories:
- businessContext: growth, profitability, expansion, acquisitions, strategy with figures
- workforceInsights: headcount trends, revenue per employee, distribution, talent, retention
- operationalChallenges: compliance, technology transformation, cost programmes
- strategicPeopleInitiatives: ESG workforce targets, hybrid work, learning, culture, people analytics

For every insight provide the exact data point, why it matters to HR, a
conversation starter, the surrounding source context, a confidence from 1
to 10 and a page or section reference.

Return at least {min_insights} insights in total across the four categories.

Output format (JSON only, no extra text):
{{
  "summary": "executive summary of the most significant HR-relevant insights",
  "businessContext": [
    {{"dataPoint": "...", "hrRelevance": "...", "conversationStarter": "...",
      "sourceContext": "...", "confidence": 8, "pageReference": "Page 15"}}
  ],
  "workforceInsights": [],
  "operationalChallenges": [],
  "strategicPeopleInitiatives": [],
  "extractionQuality": {{
    "overallConfidence": "high | medium | low",
    "dataCompleteness": "complete | partial | limited",
    "validationConcerns": [],
    "recommendedFollowUp": []
  }}
}}
""".strip(),
)


def _financial_context_lines(financials: FinancialMetrics) -> list[str]:
    revenue = financials.revenue
    profit = financials.profit_loss
    employees = financials.employees

    revenue_str = (
        f"{format_currency(revenue.current)} ({revenue.currency})"
        if revenue.current is not None else NOT_AVAILABLE
    )
    profit_str = (
        f"{format_currency(profit.amount)} ({profit.type})"
        if profit.amount is not None else NOT_AVAILABLE
    )
    return [
        f"- Revenue: {revenue_str}",
        f"- Profit/loss: {profit_str}",
        f"- Employees: {format_number(employees.total)}",
    ]


def build_context_block(
    overview: Optional[BusinessOverview] = None,
    financials: Optional[FinancialMetrics] = None,
) -> str:
    """Validated stage 0/1 output handed to the HR stage in sequential runs."""
    lines: list[str] = []

    if overview is not None:
        lines.append(f"- Industry: {overview.industry_classification}")
        lines.append(f"- Business model: {overview.business_model}")

    if financials is not None:
        lines.extend(_financial_context_lines(financials))
        if financials.validation.flagged_for_review:
            lines.append("- Note: the financial figures above are flagged for review")

    if not lines:
        return ""
    return "\nKnown context (already validated, use it instead of re-extracting):\n" + "\n".join(lines) + "\n"


def build_hr_instruction(
    min_insights: int,
    overview: Optional[BusinessOverview] = None,
    financials: Optional[FinancialMetrics] = None,
) -> str:
    # the context block is inserted before formatting, so escape its braces
    context = build_context_block(overview, financials).replace("{", "{{").replace("}", "}}")
    template = HR_PROMPT.text.replace("{context_block}", context)
    return template.format(min_insights=min_insights)
