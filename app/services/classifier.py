"""
Query classification for the B&R Food Services assistant.
- classify(): first matching rule wins; the last rule matches everything.
- complexity(): fast / normal / complex from message shape, drives the generation timeout.
- build_prompt(): system prompt + category context + user turn.
"""
import re
from enum import Enum


class QueryCategory(str, Enum):
    INVOICE_ANALYSIS = "invoice_analysis"
    MARGIN_OPTIMIZATION = "margin_optimization"
    EXCEL_FORMULAS = "excel_formulas"
    FIFA_PROJECTIONS = "fifa_projections"
    GENERAL_CONSULTATION = "general_consultation"


class QueryComplexity(str, Enum):
    FAST = "fast"
    NORMAL = "normal"
    COMPLEX = "complex"


# Evaluated in order; keywords cover English and Spanish queries
CATEGORY_RULES: list[tuple[re.Pattern, QueryCategory]] = [
    (re.compile(r"factura|invoice|coupon|crv|producto|descuento", re.I), QueryCategory.INVOICE_ANALYSIS),
    (re.compile(r"margen|margin|profit|rentabilidad|ganancia", re.I), QueryCategory.MARGIN_OPTIMIZATION),
    (re.compile(r"formula|excel|función|spreadsheet|hoja.+calculo", re.I), QueryCategory.EXCEL_FORMULAS),
    (re.compile(r"fifa|2026|olympics|2028|evento|proyección", re.I), QueryCategory.FIFA_PROJECTIONS),
    (re.compile(r".*", re.S), QueryCategory.GENERAL_CONSULTATION),
]

COMPLEXITY_SIGNALS = re.compile(r"excel|formula|projection|analysis", re.I)
_DIGIT = re.compile(r"\d")

COMPLEX_WORD_COUNT = 50
NORMAL_WORD_COUNT = 20


def classify(message: str) -> QueryCategory:
    for pattern, category in CATEGORY_RULES:
        if pattern.search(message):
            return category
    return QueryCategory.GENERAL_CONSULTATION


def complexity(message: str) -> QueryComplexity:
    words = len(message.split())
    has_signal = bool(COMPLEXITY_SIGNALS.search(message))
    if words > COMPLEX_WORD_COUNT or (has_signal and _DIGIT.search(message)):
        return QueryComplexity.COMPLEX
    if words > NORMAL_WORD_COUNT or has_signal:
        return QueryComplexity.NORMAL
    return QueryComplexity.FAST


# ---- Prompt ----

SYSTEM_PROMPT = """You are the financial automation specialist for B&R Food Services, a food distributor in Los Angeles preparing for FIFA 2026 and Olympics 2028.

Specialization:
- Automatic invoice processing with products, coupons and CRV fees
- Margin optimization for 400+ restaurants and caterers
- Excel formula creation for financial analysis
- Demand projections for massive events

Invoice structure:
- Products: description + base price
- Coupons: "Coupon" + discount (negative value)
- CRV fees: "CRV X.XX" + charge (positive value)
- Rule: adjustments always apply to the previous product

Core Excel formula:
=IF(OR(LEFT(LOWER(D2),3)="crv", LOWER(D2)="coupon"), "", E2 + IF(OR(LEFT(LOWER(D3),3)="crv", LOWER(D3)="coupon"), E3, 0))

Always respond as a food distribution expert focused on automation, efficiency and preparation for massive growth. Use emojis and markdown format for readability."""

CATEGORY_CONTEXT = {
    QueryCategory.INVOICE_ANALYSIS: "Focus on identifying products, coupons and CRV fees. Provide specific Excel formulas.",
    QueryCategory.MARGIN_OPTIMIZATION: "Analyze margins considering the foodservice industry. Include benchmarks and strategies.",
    QueryCategory.EXCEL_FORMULAS: "Generate robust formulas and explain each component. Include validations.",
    QueryCategory.FIFA_PROJECTIONS: "Use historical data from similar events. Consider seasonality and operational capacity.",
}


def build_prompt(category: QueryCategory, message: str) -> str:
    parts = [SYSTEM_PROMPT]
    context = CATEGORY_CONTEXT.get(category)
    if context:
        parts.append(context)
    parts.append(f"User: {message}")
    parts.append("Respond as the B&R Food Services specialist:")
    return "\n\n".join(parts)
