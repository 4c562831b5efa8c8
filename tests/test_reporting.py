"""
Test suite for reporting module

Tests statistics, the role dashboards, the member portal and the standard
reports with their CSV and JSON exports.
"""

import csv
import io
import json
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import Mock

from coop_mis.storage import InMemoryStorage
from coop_mis.audit import AuditTrail, AuditAction
from coop_mis.members import MemberRegistry
from coop_mis.loan_types import LoanTypeCatalog
from coop_mis.transactions import TransactionLedger
from coop_mis.savings import SavingsManager
from coop_mis.loans import LoanManager
from coop_mis.reporting import ReportingEngine, ReportType, ReportFormat, REPORT_CATALOG


class ReportingTestBase:
    """Shared setup: two members, one active and one pending loan, one savings account"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.members = MemberRegistry(self.storage, self.audit)
        self.loan_types = LoanTypeCatalog(self.storage, self.audit)
        self.ledger = TransactionLedger(self.storage, self.audit)
        self.savings = SavingsManager(self.storage, self.audit, self.members, self.ledger)
        self.loans = LoanManager(self.storage, self.audit, self.members,
                                 self.loan_types, self.ledger)
        self.reporting = ReportingEngine(self.members, self.loans, self.savings,
                                         self.ledger, self.audit)
        self.year = datetime.now(timezone.utc).year

        self.juan = self.members.create_member({"first_name": "Juan", "last_name": "Dela Cruz",
                                                "email": "juan@example.ph",
                                                "share_capital": "10000"})
        self.maria = self.members.create_member({"first_name": "Maria", "last_name": "Santos"})
        loan_type = self.loan_types.create({"name": "Emergency Loan", "code": "EMG",
                                            "interest_rate": "12", "requires_comaker": False})

        loan = self.loans.apply_for_loan(self.juan.id, loan_type.id, Decimal('50000'), 12)
        self.loans.approve_loan(loan.id)
        self.active_loan = self.loans.disburse_loan(loan.id)
        self.pending_loan = self.loans.apply_for_loan(self.maria.id, loan_type.id, Decimal('20000'), 6)
        self.account = self.savings.open_account(self.juan.id, initial_deposit=Decimal('5000'))


class TestReportingEngine(ReportingTestBase):
    """Test statistics and dashboards"""

    def test_membership_stats(self):
        assert self.reporting.membership_stats() == {
            'total': 2,
            'active': 2,
            'regular': 2,
            'associate': 0,
            'new_this_month': 2,
        }

    def test_loan_stats(self):
        assert self.reporting.loan_stats() == {
            'total': 2,
            'active': 1,
            'pending': 1,
            'paid': 0,
            'defaulted': 0,
            'total_portfolio': '50000.00',
            'total_disbursed': '50000.00',
        }

    def test_savings_stats(self):
        stats = self.reporting.savings_stats()
        assert stats['total_accounts'] == 1
        assert stats['total_balance'] == '5000.00'

    def test_loans_by_type(self):
        assert self.reporting.loans_by_type() == [
            {'name': 'Emergency Loan', 'count': 2, 'amount': '70000.00'}
        ]

    def test_monthly_series(self):
        months = self.reporting.monthly_transactions()
        assert len(months) == 6
        assert months[-1]['deposits'] == '5000.00'
        assert months[-1]['year'] == self.year

        growth = self.reporting.member_growth()
        assert growth[-1]['new'] == 2
        assert growth[-1]['total'] == 2

    def test_admin_dashboard(self):
        dashboard = self.reporting.admin_dashboard()
        assert dashboard['stats']['active_members'] == 2
        assert dashboard['stats']['active_loans'] == 1
        assert dashboard['stats']['pending_loans'] == 1
        assert dashboard['stats']['total_savings'] == '5000.00'
        assert len(dashboard['recent_members']) == 2
        kinds = {item['type'] for item in dashboard['recent_activity']}
        assert kinds == {'deposit', 'loan_application'}

    def test_manager_dashboard_collection_rate(self):
        assert self.reporting.manager_dashboard()['stats']['collection_rate'] == 0

        self.loans.record_payment(self.active_loan.id, LoanManager.amount_due(self.active_loan))
        dashboard = self.reporting.manager_dashboard()
        assert dashboard['stats']['collection_rate'] == 100
        assert [l['id'] for l in dashboard['pending_approvals']] == [self.pending_loan.id]

    def test_loan_officer_dashboard(self):
        stats = self.reporting.loan_officer_dashboard()['stats']
        assert stats == {'pending': 1, 'approved': 0, 'active': 1, 'this_month': 2}

    def test_teller_dashboard(self):
        dashboard = self.reporting.teller_dashboard()
        assert dashboard['today']['deposits'] == '5000.00'
        assert dashboard['today']['withdrawals'] == '0.00'
        assert dashboard['today']['count'] == 2
        assert len(dashboard['recent_transactions']) == 2

    def test_auditor_dashboard_flags(self):
        """Test large transactions and defaulted loans are flagged"""
        self.savings.deposit(self.account.id, Decimal('150000'))
        self.loans.mark_defaulted(self.active_loan.id)

        dashboard = self.reporting.auditor_dashboard()
        assert dashboard['stats']['total_members'] == 2
        assert dashboard['stats']['audit_logs'] > 0
        severities = sorted(item['severity'] for item in dashboard['flagged_items'])
        assert severities == ['error', 'warning']
        warning = next(i for i in dashboard['flagged_items'] if i['severity'] == 'warning')
        assert warning['title'] == "Large Deposit: ₱150,000.00"

    def test_member_portal(self):
        portal = self.reporting.member_portal("juan@example.ph")
        assert portal['member']['id'] == self.juan.id
        assert len(portal['loans']) == 1
        assert len(portal['savings']) == 1
        assert portal['total_outstanding'] == '50000.00'
        assert portal['total_savings'] == '5000.00'

    def test_member_portal_without_member(self):
        portal = self.reporting.member_portal("staff@coop.ph")
        assert portal['member'] is None
        assert portal['loans'] == []
        assert portal['total_savings'] == '0.00'

    def test_failing_store_yields_empty_lists(self):
        """Test a failing collection does not break the dashboard"""
        self.reporting.loans = Mock()
        self.reporting.loans.list_loans.side_effect = RuntimeError("database unavailable")

        dashboard = self.reporting.admin_dashboard()
        assert dashboard['stats']['active_loans'] == 0
        assert dashboard['stats']['active_members'] == 2
        assert dashboard['recent_loans'] == []

    def test_reports_overview(self):
        overview = self.reporting.reports_overview()
        assert overview['membership']['total'] == 2
        assert overview['loans']['total'] == 2
        assert overview['reports'] == REPORT_CATALOG


class TestReports(ReportingTestBase):
    """Test the standard reports and exports"""

    def test_every_report_builds(self):
        for report_type in ReportType:
            result = self.reporting.generate_report(report_type, year=self.year,
                                                    generated_by="auditor@coop.ph")
            assert result.report_id == report_type.value
            assert result.period_start.year == self.year
            assert result.metadata['row_count'] == len(result.data)
            assert result.metadata['generated_by'] == "auditor@coop.ph"

    def test_membership_report(self):
        result = self.reporting.generate_report(ReportType.MEMBERSHIP, year=self.year)
        assert result.title == "Membership Report"
        assert len(result.data) == 2
        assert result.totals['joined_in_period'] == 2
        assert result.totals['total_share_capital'] == '10000.00'

    def test_loan_portfolio_report_filters_by_year(self):
        assert len(self.reporting.generate_report(ReportType.LOAN_PORTFOLIO, year=self.year).data) == 2
        assert self.reporting.generate_report(ReportType.LOAN_PORTFOLIO, year=self.year - 5).data == []

    def test_financial_statements(self):
        result = self.reporting.generate_report(ReportType.FINANCIAL_STATEMENTS, year=self.year)
        assert result.totals == {
            'total_assets': '50000.00',
            'total_liabilities': '5000.00',
            'members_equity': '10000.00',
        }
        fees = next(r for r in result.data if r['item'] == 'Service fees')
        assert fees['amount'] == '500.00'

    def test_cda_portfolio_at_risk(self):
        self.loans.mark_defaulted(self.active_loan.id)
        result = self.reporting.generate_report(ReportType.CDA_COMPLIANCE, year=self.year)
        assert result.totals['portfolio_at_risk_percent'] == '100.00'

    def test_transaction_summary(self):
        result = self.reporting.generate_report(ReportType.TRANSACTION_SUMMARY, year=self.year)
        assert len(result.data) == 12
        assert result.totals['Deposit'] == '5000.00'
        assert result.totals['Loan Disbursement'] == '49500.00'

    def test_export_dict_not_audited(self):
        result = self.reporting.generate_report(ReportType.SAVINGS, year=self.year)
        exported = self.reporting.export_report(result, ReportFormat.DICT, exported_by="auditor@coop.ph")
        assert exported['report_id'] == "savings"
        assert exported['data'][0]['balance'] == '5000.00'
        assert self.audit.get_logs(action=AuditAction.EXPORT) == []

    def test_export_csv(self):
        result = self.reporting.generate_report(ReportType.MEMBERSHIP, year=self.year)
        text = self.reporting.export_report(result, ReportFormat.CSV, exported_by="auditor@coop.ph")
        rows = list(csv.DictReader(io.StringIO(text)))
        assert len(rows) == 2
        assert set(rows[0]) == set(result.data[0])

        logs = self.audit.get_logs(action=AuditAction.EXPORT)
        assert len(logs) == 1
        assert logs[0].user_email == "auditor@coop.ph"

    def test_export_json(self):
        result = self.reporting.generate_report(ReportType.LOAN_PORTFOLIO, year=self.year)
        data = json.loads(self.reporting.export_report(result, ReportFormat.JSON))
        assert data['title'] == "Loan Portfolio Report"
        assert data['metadata']['year'] == self.year

    def test_export_empty_csv(self):
        result = self.reporting.generate_report(ReportType.LOAN_PORTFOLIO, year=self.year - 5)
        assert self.reporting.export_report(result, ReportFormat.CSV) == ""
