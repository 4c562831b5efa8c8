"""
Test suite for eligibility module

Tests the lending rules applied without an LLM, prompt construction and
the analyzer's choice between the LLM answer and the rule-based fallback.
"""

import pytest
from datetime import date
from decimal import Decimal

from coop_mis.storage import InMemoryStorage
from coop_mis.audit import AuditTrail
from coop_mis.members import MemberRegistry
from coop_mis.loan_types import LoanTypeCatalog
from coop_mis.transactions import TransactionLedger
from coop_mis.savings import SavingsManager
from coop_mis.loans import LoanManager
from coop_mis.llm_client import LLMClient, MockLLMClient
from coop_mis.eligibility import (
    EligibilityAnalyzer, RESPONSE_SCHEMA, build_prompt, months_between,
    answer_problems, rule_based_assessment, score_band
)


def _metrics(**overrides):
    values = {
        'member_id': "M1",
        'member_name': "Juan Dela Cruz",
        'membership_duration_months': 30,
        'monthly_income': Decimal('30000'),
        'share_capital': Decimal('20000'),
        'total_savings': Decimal('10000'),
        'active_loans_count': 0,
        'total_outstanding_balance': Decimal('0'),
        'paid_loans_count': 1,
        'defaulted_loans_count': 0,
        'total_loan_payments_made': 3,
        'total_amount_paid': Decimal('20000'),
        'monthly_loan_obligations': Decimal('0'),
    }
    values.update(overrides)
    return values


class TestHelpers:
    """Test small helpers"""

    def test_answer_problems(self):
        good = {'is_eligible': False, 'eligibility_score': 35.5,
                'max_reloanable_amount': 0, 'risk_level': "High"}
        assert answer_problems(good) == []
        assert answer_problems(dict(good, max_reloanable_amount="1000")) == [
            "max_reloanable_amount is not a number"
        ]
        assert answer_problems(dict(good, concerns="none")) == ["concerns is not a list"]

    def test_months_between(self):
        assert months_between(date(2024, 1, 1), date(2024, 7, 1)) == 6
        assert months_between(date(2024, 1, 1), date(2024, 1, 20)) == 0
        assert months_between(date(2024, 7, 1), date(2024, 1, 1)) == 0

    def test_score_band(self):
        assert score_band(95) == "excellent"
        assert score_band(80) == "excellent"
        assert score_band(65) == "good"
        assert score_band(40) == "fair"
        assert score_band(12.5) == "poor"

    def test_build_prompt(self):
        prompt = build_prompt(_metrics())
        assert "Name: Juan Dela Cruz" in prompt
        assert "Monthly Income: ₱30,000.00" in prompt
        assert "Membership Duration: 30 months" in prompt
        assert "6. Outstanding balance affects reloanable amount" in prompt


class TestRuleBasedAssessment:
    """Test lending rules"""

    def test_good_member(self):
        result = rule_based_assessment(_metrics())
        assert result['is_eligible'] is True
        assert result['eligibility_score'] == 80
        assert result['risk_level'] == "low"
        # 3x income beats 2x share capital
        assert result['max_reloanable_amount'] == 90000.0
        assert result['recommended_term_months'] == 12
        assert result['estimated_monthly_payment'] <= 12000
        assert result['denial_reasons'] == []

    def test_outstanding_balance_reduces_amount(self):
        result = rule_based_assessment(_metrics(total_outstanding_balance=Decimal('30000'),
                                                monthly_loan_obligations=Decimal('2000'),
                                                active_loans_count=1))
        assert result['max_reloanable_amount'] == 60000.0
        assert any("offsetting" in r for r in result['recommendations'])

    def test_share_capital_ceiling(self):
        result = rule_based_assessment(_metrics(monthly_income=Decimal('5000'),
                                                share_capital=Decimal('50000')))
        assert result['max_reloanable_amount'] == 100000.0

    def test_new_member_denied(self):
        result = rule_based_assessment(_metrics(membership_duration_months=2))
        assert result['is_eligible'] is False
        assert result['recommended_loan_amount'] == 0.0
        assert any("6-month minimum" in r for r in result['denial_reasons'])

    def test_defaulted_member_denied(self):
        result = rule_based_assessment(_metrics(defaulted_loans_count=1))
        assert result['is_eligible'] is False
        assert result['risk_level'] == "high"
        assert "Member has defaulted loans" in result['denial_reasons']

    def test_no_repayment_capacity(self):
        result = rule_based_assessment(_metrics(monthly_loan_obligations=Decimal('12000')))
        assert result['is_eligible'] is False
        assert any("40%" in r for r in result['denial_reasons'])

    def test_amount_scaled_to_capacity(self):
        """Test the recommendation shrinks when even 36 months is too costly"""
        result = rule_based_assessment(_metrics(monthly_income=Decimal('10000'),
                                                share_capital=Decimal('200000')))
        assert result['recommended_term_months'] == 36
        assert result['recommended_loan_amount'] < result['max_reloanable_amount']
        assert result['estimated_monthly_payment'] <= 4000.05

    def test_score_bounds(self):
        result = rule_based_assessment(_metrics(membership_duration_months=0, defaulted_loans_count=3,
                                                monthly_income=Decimal('0'), paid_loans_count=0,
                                                total_loan_payments_made=0,
                                                total_savings=Decimal('0')))
        assert result['eligibility_score'] == 0


class TestEligibilityAnalyzer:
    """Test the analyzer against stored member data"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.members = MemberRegistry(self.storage, self.audit)
        self.loan_types = LoanTypeCatalog(self.storage, self.audit)
        self.ledger = TransactionLedger(self.storage, self.audit)
        self.savings = SavingsManager(self.storage, self.audit, self.members, self.ledger)
        self.loans = LoanManager(self.storage, self.audit, self.members,
                                 self.loan_types, self.ledger)
        self.member = self.members.create_member({
            "first_name": "Juan", "last_name": "Dela Cruz",
            "membership_date": date(2020, 1, 1),
            "monthly_income": "30000", "share_capital": "20000",
        })

    def _analyzer(self, llm_client=None):
        return EligibilityAnalyzer(self.members, self.loans, self.savings, self.ledger, llm_client)

    def test_gather_member_metrics(self):
        loan_type = self.loan_types.create({"name": "Emergency Loan", "code": "EMG",
                                            "requires_comaker": False})
        loan = self.loans.apply_for_loan(self.member.id, loan_type.id, Decimal('12000'), 12)
        self.loans.approve_loan(loan.id)
        self.loans.disburse_loan(loan.id)
        self.loans.record_payment(loan.id, Decimal('1000'))
        self.savings.open_account(self.member.id, initial_deposit=Decimal('2500'))

        metrics = self._analyzer().gather_member_metrics(self.member.id, today=date(2022, 1, 1))
        assert metrics['membership_duration_months'] == 24
        assert metrics['total_savings'] == Decimal('2500.00')
        assert metrics['active_loans_count'] == 1
        assert metrics['total_loan_payments_made'] == 1
        assert metrics['monthly_loan_obligations'] == loan.monthly_amortization

    def test_unknown_member(self):
        with pytest.raises(ValueError, match="not found"):
            self._analyzer().analyze("missing")

    def test_rules_without_llm(self):
        result = self._analyzer().analyze(self.member.id)
        assert result['source'] == "rules"
        assert result['is_eligible'] is True
        assert result['score_band'] == score_band(result['eligibility_score'])
        assert result['member_data']['monthly_income'] == "30000.00"

    def test_disabled_llm_uses_rules(self):
        result = self._analyzer(LLMClient(base_url="")).analyze(self.member.id)
        assert result['source'] == "rules"

    def test_llm_answer_used(self):
        llm = MockLLMClient({
            'is_eligible': True,
            'eligibility_score': 72,
            'max_reloanable_amount': 85000,
            'risk_level': "medium",
        })
        result = self._analyzer(llm).analyze(self.member.id)

        assert result['source'] == "llm"
        assert result['eligibility_score'] == 72
        assert result['score_band'] == "good"
        assert result['strengths'] == []
        assert "Name: Juan Dela Cruz" in llm.prompts[0]

    def test_llm_failure_falls_back(self):
        llm = MockLLMClient(None)
        result = self._analyzer(llm).analyze(self.member.id)
        assert result['source'] == "rules"
        assert len(llm.prompts) == 1

    def test_badly_typed_llm_answer_falls_back(self):
        """Test that an answer with the right keys but wrong types is not used"""
        llm = MockLLMClient({
            'is_eligible': True,
            'eligibility_score': "high",
            'max_reloanable_amount': 1000,
            'risk_level': "low",
        })
        result = self._analyzer(llm).analyze(self.member.id)
        assert result['source'] == "rules"
        assert isinstance(result['eligibility_score'], (int, float))

    def test_unknown_risk_level_falls_back(self):
        llm = MockLLMClient({
            'is_eligible': "yes",
            'eligibility_score': 70,
            'max_reloanable_amount': 1000,
            'risk_level': "moderate",
        })
        assert self._analyzer(llm).analyze(self.member.id)['source'] == "rules"

    def test_schema_requires_core_fields(self):
        assert set(RESPONSE_SCHEMA['required']) == {
            'is_eligible', 'eligibility_score', 'max_reloanable_amount', 'risk_level'
        }
