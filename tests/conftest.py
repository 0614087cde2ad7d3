# tests/conftest.py
import json
from typing import Dict, List, Union

import pytest

from reportlens.config import Settings, load_rules
from reportlens.extractors.document_client import DocumentHandle
from reportlens.normalization.financial_normalizer import FinancialNormalizer
from reportlens.prompts.stage_prompts import BUSINESS_OVERVIEW_PROMPT, FINANCIAL_PROMPT


OVERVIEW_PAYLOAD = {
    "companyOverview": "Acme builds industrial widgets for European manufacturers.",
    "businessModel": "Product sales plus multi-year service contracts.",
    "revenueStreams": ["Widgets (+12%)", "Maintenance services"],
    "keyMetrics": ["Gross margin", "Order backlog"],
    "operationalChallenges": ["Skilled labour shortage"],
    "hrPayrollRelevance": "Shift-based workforce across 9 countries.",
    "industryClassification": "Manufacturing",
    "competitivePosition": "Number two in the European market.",
    "extractionQuality": {"confidence": "high", "completeness": "complete", "sourceQuality": "Full annual report"},
}

FINANCIAL_PAYLOAD = {
    "financialMetrics": {
        "revenue": {
            "current": "2.6B", "previous": None, "growth": None, "currency": "USD",
            "confidence": "high", "sourceText": "Total revenue: $2.61 billion",
            "extractionMethod": "direct_statement",
        },
        "profitLoss": {
            "type": "profit", "amount": "200M", "margin": None, "confidence": "high",
            "sourceText": "Net profit of $200 million", "validationFlags": [],
        },
        "employees": {
            "total": 12000, "previousYear": None, "growth": None, "confidence": "high",
            "sourceText": "The company had 12,000 employees",
        },
        "assets": {"total": None, "currency": "USD", "confidence": "low", "sourceText": ""},
        "validation": {
            "revenueReasonable": True, "profitMarginReasonable": True,
            "crossCheckPassed": True, "flaggedForReview": False, "notes": "",
        },
    }
}


def _insight(n: int) -> dict:
    return {
        "dataPoint": f"Data point {n}",
        "hrRelevance": f"Why it matters {n}",
        "conversationStarter": f"Question {n}?",
        "sourceContext": "Strategy section",
        "confidence": 8,
        "pageReference": f"Page {n}",
    }


HR_PAYLOAD = {
    "summary": "Acme is growing headcount while facing a skilled labour shortage.",
    "businessContext": [_insight(1), _insight(2)],
    "workforceInsights": [_insight(3), _insight(4)],
    "operationalChallenges": [_insight(5)],
    "strategicPeopleInitiatives": [_insight(6)],
    "extractionQuality": {
        "overallConfidence": "high",
        "dataCompleteness": "complete",
        "validationConcerns": [],
        "recommendedFollowUp": ["Confirm regional headcount split"],
    },
}

Response = Union[str, Exception]


def stage_of(instruction: str) -> str:
    if instruction == BUSINESS_OVERVIEW_PROMPT.text:
        return "business_overview"
    if instruction == FINANCIAL_PROMPT.text:
        return "financial"
    return "hr"


class FakeClient:
    """
    Stand-in for DocumentAnalysisClient. Each stage gets a queue of
    responses; an Exception in the queue is raised, the last entry repeats.
    """

    def __init__(self, responses: Dict[str, List[Response]]):
        self.responses = {stage: list(items) for stage, items in responses.items()}
        self.calls: List[str] = []
        self.instructions: Dict[str, List[str]] = {}

    async def generate(self, document, instruction, *, temperature=0.1):
        stage = stage_of(instruction)
        self.calls.append(stage)
        self.instructions.setdefault(stage, []).append(instruction)

        queue = self.responses[stage]
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item


def good_responses() -> Dict[str, List[Response]]:
    return {
        "business_overview": [json.dumps(OVERVIEW_PAYLOAD)],
        "financial": ["```json\n" + json.dumps(FINANCIAL_PAYLOAD) + "\n```"],
        "hr": ["Here is the analysis:\n" + json.dumps(HR_PAYLOAD)],
    }


@pytest.fixture
def settings():
    return Settings(hr_retry_backoff_seconds=0.0)


@pytest.fixture
def rules():
    return load_rules()


@pytest.fixture
def normalizer(rules, settings):
    return FinancialNormalizer(rules, settings)


@pytest.fixture
def document(tmp_path):
    path = tmp_path / "annual_report.pdf"
    path.write_bytes(b"%PDF-1.4 fake annual report")
    return DocumentHandle(path)
