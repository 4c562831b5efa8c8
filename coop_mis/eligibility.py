"""
Loan Eligibility Analyzer

Gathers a member's financial standing (income, share capital, savings, loan
history) and asks the LLM for an eligibility assessment and a reloanable
amount. When no LLM is configured, or it fails, the same lending rules are
applied deterministically.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Any

from .amortization import monthly_payment
from .currency import round_money, to_decimal, format_peso
from .llm_client import LLMClient
from .loans import LoanManager, LoanStatus, ACTIVE_STATUSES
from .members import MemberRegistry
from .savings import SavingsManager
from .transactions import TransactionLedger, TransactionType
from .logging_config import get_logger

logger = get_logger("coop_mis.eligibility")

MIN_MEMBERSHIP_MONTHS = 6
INCOME_MULTIPLIER = Decimal('3')
SHARE_CAPITAL_MULTIPLIER = Decimal('2')
MAX_AMORTIZATION_RATIO = Decimal('0.40')
ESTIMATE_RATE = Decimal('12')

ANALYSIS_RULES = [
    "Maximum loan amount should not exceed 3x monthly income or 2x share capital, whichever is higher",
    "Monthly amortization should not exceed 40% of monthly income",
    "Members with defaulted loans should be flagged",
    "Consider payment history and membership duration",
    "Members must have at least 6 months membership",
    "Outstanding balance affects reloanable amount",
]

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "is_eligible": {"type": "boolean",
                        "description": "Whether the member is eligible for a new loan"},
        "eligibility_score": {"type": "number",
                              "description": "Score from 0-100 indicating creditworthiness"},
        "max_reloanable_amount": {"type": "number",
                                  "description": "Maximum amount the member can borrow"},
        "recommended_loan_amount": {"type": "number",
                                    "description": "Recommended loan amount"},
        "recommended_term_months": {"type": "number",
                                    "description": "Recommended loan term in months"},
        "estimated_monthly_payment": {"type": "number",
                                      "description": "Estimated monthly amortization at 12% interest"},
        "risk_level": {"type": "string", "description": "Risk assessment: low, medium, high"},
        "strengths": {"type": "array", "items": {"type": "string"},
                      "description": "Positive factors for the member"},
        "concerns": {"type": "array", "items": {"type": "string"},
                     "description": "Risk factors or concerns"},
        "recommendations": {"type": "array", "items": {"type": "string"},
                            "description": "Specific recommendations for the loan officer"},
        "denial_reasons": {"type": "array", "items": {"type": "string"},
                           "description": "Reasons if not eligible"},
    },
    "required": ["is_eligible", "eligibility_score", "max_reloanable_amount", "risk_level"],
}


def months_between(start: date, end: date) -> int:
    """Whole 30-day months elapsed"""
    return max((end - start).days // 30, 0)


def score_band(score: float) -> str:
    """Display band of an eligibility score"""
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "poor"


RISK_LEVELS = ("low", "medium", "high")
NUMBER_FIELDS = ("eligibility_score", "max_reloanable_amount", "recommended_loan_amount",
                 "recommended_term_months", "estimated_monthly_payment")
LIST_FIELDS = ("strengths", "concerns", "recommendations", "denial_reasons")


def answer_problems(answer: Dict[str, Any]) -> List[str]:
    """Ways an LLM answer breaks RESPONSE_SCHEMA; empty when it can be used"""
    problems = []
    if not isinstance(answer.get("is_eligible"), bool):
        problems.append("is_eligible is not a boolean")
    for name in NUMBER_FIELDS:
        value = answer.get(name)
        required = name in RESPONSE_SCHEMA["required"]
        if value is None and not required:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            problems.append(f"{name} is not a number")
    risk_level = answer.get("risk_level")
    if not isinstance(risk_level, str) or risk_level.lower() not in RISK_LEVELS:
        problems.append("risk_level is not low, medium or high")
    for name in LIST_FIELDS:
        if answer.get(name) is not None and not isinstance(answer[name], list):
            problems.append(f"{name} is not a list")
    return problems


def build_prompt(metrics: Dict[str, Any]) -> str:
    """Analyst prompt with the member's figures and the lending rules"""
    lines = [
        "You are a credit cooperative loan analyst AI. Analyze the following member's "
        "financial data and determine their loan eligibility and recommended reloanable amount.",
        "",
        "MEMBER DATA:",
        f"- Name: {metrics['member_name']}",
        f"- Membership Duration: {metrics['membership_duration_months']} months",
        f"- Monthly Income: {format_peso(metrics['monthly_income'])}",
        f"- Share Capital: {format_peso(metrics['share_capital'])}",
        f"- Total Savings: {format_peso(metrics['total_savings'])}",
        f"- Active Loans: {metrics['active_loans_count']}",
        f"- Outstanding Balance: {format_peso(metrics['total_outstanding_balance'])}",
        f"- Completed/Paid Loans: {metrics['paid_loans_count']}",
        f"- Defaulted Loans: {metrics['defaulted_loans_count']}",
        f"- Total Loan Payments Made: {metrics['total_loan_payments_made']}",
        f"- Current Monthly Loan Obligations: {format_peso(metrics['monthly_loan_obligations'])}",
        "",
        "ANALYSIS RULES:",
    ]
    lines.extend(f"{i}. {rule}" for i, rule in enumerate(ANALYSIS_RULES, 1))
    lines.append("")
    lines.append("Provide a comprehensive analysis with specific recommendations.")
    return "\n".join(lines)


def rule_based_assessment(metrics: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply the lending rules without the LLM.

    Score starts at 50 and moves with membership length, repayment history,
    savings and debt load; any defaulted loan or a membership under six
    months makes the member ineligible.
    """
    income = to_decimal(metrics['monthly_income'])
    share_capital = to_decimal(metrics['share_capital'])
    savings = to_decimal(metrics['total_savings'])
    outstanding = to_decimal(metrics['total_outstanding_balance'])
    obligations = to_decimal(metrics['monthly_loan_obligations'])
    months = metrics['membership_duration_months']
    defaulted = metrics['defaulted_loans_count']
    paid_loans = metrics['paid_loans_count']

    strengths: List[str] = []
    concerns: List[str] = []
    recommendations: List[str] = []
    denial_reasons: List[str] = []
    score = 50

    if months >= 24:
        score += 15
        strengths.append(f"Long-standing member ({months} months)")
    elif months >= MIN_MEMBERSHIP_MONTHS:
        score += 5
    else:
        score -= 20
        denial_reasons.append(f"Membership of {months} months is below the {MIN_MEMBERSHIP_MONTHS}-month minimum")

    if paid_loans:
        score += min(paid_loans * 5, 15)
        strengths.append(f"{paid_loans} loan(s) fully paid")
    if metrics['total_loan_payments_made']:
        score += 5

    if defaulted:
        score -= 40
        concerns.append(f"{defaulted} defaulted loan(s) on record")
        denial_reasons.append("Member has defaulted loans")

    if savings > 0:
        score += 5
        strengths.append(f"Savings balance of {format_peso(savings)}")
    if share_capital > 0:
        strengths.append(f"Share capital of {format_peso(share_capital)}")

    ceiling = max(income * INCOME_MULTIPLIER, share_capital * SHARE_CAPITAL_MULTIPLIER)
    max_reloanable = max(ceiling - outstanding, Decimal('0'))
    if outstanding > 0:
        concerns.append(f"Outstanding balance of {format_peso(outstanding)} reduces the loanable amount")

    payment_room = income * MAX_AMORTIZATION_RATIO - obligations
    if income <= 0:
        concerns.append("No declared monthly income")
        score -= 10
    elif payment_room <= 0:
        score -= 20
        concerns.append("Existing amortizations already use 40% of monthly income")
        denial_reasons.append("No repayment capacity left under the 40% income ceiling")
    elif obligations > 0:
        score -= 5

    # Shortest standard term whose payment fits the remaining capacity
    recommended_amount = max_reloanable
    recommended_term = 12
    estimated_payment = Decimal('0')
    if recommended_amount > 0:
        for term in (6, 12, 18, 24, 36):
            recommended_term = term
            estimated_payment = monthly_payment(recommended_amount, ESTIMATE_RATE, term)
            if payment_room > 0 and estimated_payment <= payment_room:
                break
        if payment_room > 0 and estimated_payment > payment_room:
            # Scale the amount down to what the capacity supports at 36 months
            recommended_amount = recommended_amount * payment_room / estimated_payment
            estimated_payment = monthly_payment(recommended_amount, ESTIMATE_RATE, recommended_term)
            recommendations.append("Reduce the loan amount to keep amortization within 40% of income")

    if max_reloanable <= 0:
        denial_reasons.append("No reloanable amount after outstanding balances")

    score = max(0, min(100, score))
    is_eligible = not denial_reasons
    if defaulted or score < 40:
        risk_level = "high"
    elif score < 70:
        risk_level = "medium"
    else:
        risk_level = "low"

    if is_eligible and outstanding > 0:
        recommendations.append("Consider offsetting the outstanding balance from the new loan proceeds")
    if is_eligible and not savings:
        recommendations.append("Encourage regular savings deposits")
    if not is_eligible:
        recommended_amount = Decimal('0')
        estimated_payment = Decimal('0')

    return {
        'is_eligible': is_eligible,
        'eligibility_score': score,
        'max_reloanable_amount': float(round_money(max_reloanable)),
        'recommended_loan_amount': float(round_money(recommended_amount)),
        'recommended_term_months': recommended_term,
        'estimated_monthly_payment': float(round_money(estimated_payment)),
        'risk_level': risk_level,
        'strengths': strengths,
        'concerns': concerns,
        'recommendations': recommendations,
        'denial_reasons': denial_reasons,
    }


class EligibilityAnalyzer:
    """
    Loan eligibility assessment for the loan officer
    """

    def __init__(self, members: MemberRegistry, loans: LoanManager,
                 savings: SavingsManager, ledger: TransactionLedger,
                 llm_client: Optional[LLMClient] = None):
        self.members = members
        self.loans = loans
        self.savings = savings
        self.ledger = ledger
        self.llm_client = llm_client

    def gather_member_metrics(self, member_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        """Figures the assessment is based on"""
        member = self.members.require_member(member_id)
        today = today or datetime.now(timezone.utc).date()

        loans = self.loans.list_loans(member_id=member_id)
        active = [l for l in loans if l.status in ACTIVE_STATUSES]
        paid = [l for l in loans if l.status == LoanStatus.PAID]
        defaulted = [l for l in loans if l.status == LoanStatus.DEFAULTED]
        accounts = self.savings.list_accounts(member_id=member_id)
        payments = self.ledger.list_transactions(
            transaction_type=TransactionType.LOAN_PAYMENT, member_id=member_id
        )
        zero = Decimal('0.00')

        return {
            'member_id': member.id,
            'member_name': member.full_name,
            'membership_duration_months': (
                months_between(member.membership_date, today) if member.membership_date else 0
            ),
            'monthly_income': member.monthly_income,
            'share_capital': member.share_capital,
            'total_savings': sum((a.balance for a in accounts), zero),
            'active_loans_count': len(active),
            'total_outstanding_balance': sum((l.outstanding_balance for l in active), zero),
            'paid_loans_count': len(paid),
            'defaulted_loans_count': len(defaulted),
            'total_loan_payments_made': len(payments),
            'total_amount_paid': sum((l.principal_amount for l in paid), zero),
            'monthly_loan_obligations': sum((l.monthly_amortization for l in active), zero),
        }

    def analyze(self, member_id: str) -> Dict[str, Any]:
        """
        Assess a member's eligibility for a new loan

        Returns:
            Assessment following RESPONSE_SCHEMA plus member_data, score_band
            and source ("llm" or "rules")
        """
        metrics = self.gather_member_metrics(member_id)

        result = None
        if self.llm_client is not None and self.llm_client.enabled:
            result = self.llm_client.invoke(build_prompt(metrics), RESPONSE_SCHEMA)
            if result is None:
                logger.warning("LLM assessment unavailable for member %s, using rules", member_id)
            else:
                problems = answer_problems(result)
                if problems:
                    logger.warning("Unusable LLM assessment for member %s, using rules: %s",
                                   member_id, "; ".join(problems))
                    result = None
                else:
                    result["risk_level"] = result["risk_level"].lower()

        source = "llm"
        if result is None:
            result = rule_based_assessment(metrics)
            source = "rules"

        for key in LIST_FIELDS:
            if result.get(key) is None:
                result[key] = []
        result['source'] = source
        result['score_band'] = score_band(float(result.get('eligibility_score', 0)))
        result['member_data'] = {
            k: (str(v) if isinstance(v, Decimal) else v) for k, v in metrics.items()
        }
        return result
