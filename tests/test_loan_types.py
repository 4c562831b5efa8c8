"""
Test suite for loan_types module

Tests loan product validation, limit checks and catalog maintenance.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from coop_mis.storage import InMemoryStorage
from coop_mis.audit import AuditTrail, AuditAction, AuditModule
from coop_mis.loan_types import LoanType, LoanTypeCatalog


def _loan_type(**overrides) -> LoanType:
    now = datetime.now(timezone.utc)
    values = dict(id="LT1", created_at=now, updated_at=now, name="Salary Loan", code="SAL",
                  interest_rate=Decimal('12'), min_amount=Decimal('5000'),
                  max_amount=Decimal('100000'), min_term_months=6, max_term_months=24)
    values.update(overrides)
    return LoanType(**values)


class TestLoanType:
    """Test product rules"""

    def test_valid_product(self):
        _loan_type().validate()

    def test_name_and_code_required(self):
        with pytest.raises(ValueError, match="name and code"):
            _loan_type(code="").validate()

    def test_negative_rate(self):
        with pytest.raises(ValueError, match="Interest rate cannot be negative"):
            _loan_type(interest_rate=Decimal('-1')).validate()

    def test_inverted_limits(self):
        with pytest.raises(ValueError, match="Minimum amount exceeds"):
            _loan_type(min_amount=Decimal('200000')).validate()
        with pytest.raises(ValueError, match="Minimum term exceeds"):
            _loan_type(min_term_months=36).validate()

    def test_check_terms(self):
        """Test amounts and terms outside the limits are refused"""
        lt = _loan_type()
        lt.check_terms(Decimal('50000'), 12)
        with pytest.raises(ValueError, match="below"):
            lt.check_terms(Decimal('1000'), 12)
        with pytest.raises(ValueError, match="exceeds"):
            lt.check_terms(Decimal('150000'), 12)
        with pytest.raises(ValueError, match="Term is below"):
            lt.check_terms(Decimal('50000'), 3)
        with pytest.raises(ValueError, match="Term exceeds"):
            lt.check_terms(Decimal('50000'), 36)

    def test_zero_limits_not_enforced(self):
        lt = _loan_type(min_amount=Decimal('0'), max_amount=Decimal('0'),
                        min_term_months=0, max_term_months=0)
        lt.check_terms(Decimal('9999999'), 120)


class TestLoanTypeCatalog:
    """Test catalog CRUD"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.catalog = LoanTypeCatalog(self.storage, self.audit)

    def test_create(self):
        lt = self.catalog.create({"name": "Emergency Loan", "code": " emg ",
                                  "interest_rate": "10", "max_amount": "20000",
                                  "requires_comaker": False}, created_by="admin@coop.ph")
        assert lt.code == "EMG"
        assert lt.interest_rate == Decimal('10')
        assert lt.max_amount == Decimal('20000')
        assert lt.requires_comaker is False
        assert lt.is_active is True

        entry = self.audit.get_logs()[0]
        assert entry.module == AuditModule.SETTINGS
        assert entry.action == AuditAction.CREATE

    def test_duplicate_code(self):
        self.catalog.create({"name": "Emergency Loan", "code": "EMG"})
        with pytest.raises(ValueError, match="already exists"):
            self.catalog.create({"name": "Another", "code": "emg"})

    def test_unknown_field(self):
        with pytest.raises(ValueError, match="Unknown loan type fields"):
            self.catalog.create({"name": "X", "code": "X", "penalty": "5"})

    def test_invalid_product_not_saved(self):
        with pytest.raises(ValueError):
            self.catalog.create({"name": "Bad", "code": "BAD", "interest_rate": "-5"})
        assert self.catalog.list() == []

    def test_update(self):
        lt = self.catalog.create({"name": "Emergency Loan", "code": "EMG"})
        updated = self.catalog.update(lt.id, {"interest_rate": "8", "is_active": False})
        assert updated.interest_rate == Decimal('8')
        assert updated.is_active is False
        assert updated.code == "EMG"

    def test_update_to_taken_code(self):
        self.catalog.create({"name": "Emergency Loan", "code": "EMG"})
        other = self.catalog.create({"name": "Salary Loan", "code": "SAL"})
        with pytest.raises(ValueError, match="already exists"):
            self.catalog.update(other.id, {"code": "EMG"})

    def test_update_missing(self):
        with pytest.raises(ValueError, match="not found"):
            self.catalog.update("missing", {"name": "X"})

    def test_delete(self):
        lt = self.catalog.create({"name": "Emergency Loan", "code": "EMG"})
        assert self.catalog.delete(lt.id) is True
        assert self.catalog.get(lt.id) is None
        with pytest.raises(ValueError, match="not found"):
            self.catalog.delete(lt.id)

    def test_list_active_only(self):
        self.catalog.create({"name": "Emergency Loan", "code": "EMG"})
        self.catalog.create({"name": "Old Loan", "code": "OLD", "is_active": False})
        assert len(self.catalog.list()) == 2
        assert [lt.code for lt in self.catalog.list(active_only=True)] == ["EMG"]
