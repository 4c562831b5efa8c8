"""
Reporting Engine Module

Statistics, role dashboards and the standard cooperative reports
(membership, loan portfolio, savings, financial statements, CDA compliance,
transaction summary) with dict, JSON and CSV export.
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Any, Union
from enum import Enum
import csv
import io
import json

from .audit import AuditTrail, AuditAction, AuditModule
from .currency import format_peso, to_decimal
from .loans import LoanManager, Loan, LoanStatus, ACTIVE_STATUSES
from .members import MemberRegistry, Member, MemberStatus, MembershipType
from .savings import SavingsManager, SavingsAccount, AccountStatus
from .transactions import TransactionLedger, Transaction, TransactionType
from .logging_config import get_logger

logger = get_logger("coop_mis.reporting")

ZERO = Decimal('0.00')


class ReportType(Enum):
    """Report cards on the reports page"""
    MEMBERSHIP = "membership"
    LOAN_PORTFOLIO = "loan_portfolio"
    SAVINGS = "savings"
    FINANCIAL_STATEMENTS = "financial_statements"
    CDA_COMPLIANCE = "cda_compliance"
    TRANSACTION_SUMMARY = "transaction_summary"


class ReportFormat(Enum):
    """Output formats for reports"""
    DICT = "dict"
    CSV = "csv"
    JSON = "json"


REPORT_CATALOG: List[Dict[str, str]] = [
    {'id': ReportType.MEMBERSHIP.value, 'title': 'Membership Report',
     'description': 'Member demographics and growth analysis'},
    {'id': ReportType.LOAN_PORTFOLIO.value, 'title': 'Loan Portfolio Report',
     'description': 'Loan performance and collection status'},
    {'id': ReportType.SAVINGS.value, 'title': 'Savings Report',
     'description': 'Savings mobilization and interest analysis'},
    {'id': ReportType.FINANCIAL_STATEMENTS.value, 'title': 'Financial Statements',
     'description': 'Balance sheet and income statement'},
    {'id': ReportType.CDA_COMPLIANCE.value, 'title': 'CDA Compliance Report',
     'description': 'Regulatory compliance and submissions'},
    {'id': ReportType.TRANSACTION_SUMMARY.value, 'title': 'Transaction Summary',
     'description': 'Daily, weekly, and monthly transactions'},
]


@dataclass
class ReportResult:
    """Result of report execution"""
    report_id: str
    title: str
    generated_at: datetime
    period_start: date
    period_end: date
    data: List[Dict[str, Any]] = field(default_factory=list)
    totals: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


def _month_start(day: date, months_back: int = 0) -> date:
    month = day.month - 1 - months_back
    year = day.year + month // 12
    return date(year, month % 12 + 1, 1)


def _same_month(value: Optional[date], month: date) -> bool:
    return value is not None and value.year == month.year and value.month == month.month


def _sum(values) -> Decimal:
    return sum(values, ZERO)


def _money(value: Decimal) -> str:
    return str(value.quantize(Decimal('0.01')))


class ReportingEngine:
    """
    Aggregates over members, loans, savings and transactions
    """

    def __init__(self, members: MemberRegistry, loans: LoanManager,
                 savings: SavingsManager, ledger: TransactionLedger,
                 audit: AuditTrail, large_transaction_threshold: Decimal = Decimal('100000'),
                 list_limit: int = 500):
        self.members = members
        self.loans = loans
        self.savings = savings
        self.ledger = ledger
        self.audit = audit
        self.large_transaction_threshold = to_decimal(large_transaction_threshold)
        self.list_limit = list_limit

    def _load(self, label: str, loader: Callable[[], List[Any]]) -> List[Any]:
        """Run a collection query; a failing store yields an empty list so views still render"""
        try:
            return loader()
        except Exception:
            logger.exception("Error loading %s", label)
            return []

    def _all_members(self) -> List[Member]:
        return self._load("members", lambda: self.members.list_members(limit=self.list_limit))

    def _all_loans(self) -> List[Loan]:
        return self._load("loans", lambda: self.loans.list_loans(limit=self.list_limit))

    def _all_accounts(self) -> List[SavingsAccount]:
        return self._load("savings accounts", lambda: self.savings.list_accounts(limit=self.list_limit))

    def _all_transactions(self, limit: Optional[int] = None) -> List[Transaction]:
        return self._load("transactions",
                          lambda: self.ledger.list_transactions(limit=limit or self.list_limit))

    @staticmethod
    def _today() -> date:
        return datetime.now(timezone.utc).date()

    # Statistics

    def membership_stats(self, members: Optional[List[Member]] = None) -> Dict[str, Any]:
        members = self._all_members() if members is None else members
        today = self._today()
        return {
            'total': len(members),
            'active': sum(1 for m in members if m.status == MemberStatus.ACTIVE),
            'regular': sum(1 for m in members if m.membership_type == MembershipType.REGULAR),
            'associate': sum(1 for m in members if m.membership_type == MembershipType.ASSOCIATE),
            'new_this_month': sum(1 for m in members if _same_month(m.created_at.date(), today)),
        }

    def loan_stats(self, loans: Optional[List[Loan]] = None) -> Dict[str, Any]:
        loans = self._all_loans() if loans is None else loans
        active = [l for l in loans if l.status in ACTIVE_STATUSES]
        disbursed = [l for l in loans if l.status in ACTIVE_STATUSES + (LoanStatus.PAID,)]
        return {
            'total': len(loans),
            'active': len(active),
            'pending': sum(1 for l in loans if l.status == LoanStatus.PENDING),
            'paid': sum(1 for l in loans if l.status == LoanStatus.PAID),
            'defaulted': sum(1 for l in loans if l.status == LoanStatus.DEFAULTED),
            'total_portfolio': _money(_sum(l.outstanding_balance for l in active)),
            'total_disbursed': _money(_sum(l.principal_amount for l in disbursed)),
        }

    def savings_stats(self, accounts: Optional[List[SavingsAccount]] = None) -> Dict[str, Any]:
        accounts = self._all_accounts() if accounts is None else accounts
        return {
            'total_accounts': len(accounts),
            'active_accounts': sum(1 for a in accounts if a.status == AccountStatus.ACTIVE),
            'total_balance': _money(_sum(a.balance for a in accounts)),
            'total_deposits': _money(_sum(a.total_deposits for a in accounts)),
            'total_withdrawals': _money(_sum(a.total_withdrawals for a in accounts)),
        }

    def loans_by_type(self, loans: Optional[List[Loan]] = None) -> List[Dict[str, Any]]:
        """Loan count and principal per loan type"""
        loans = self._all_loans() if loans is None else loans
        grouped: Dict[str, Dict[str, Any]] = {}
        for loan in loans:
            name = loan.loan_type_name or 'Other'
            entry = grouped.setdefault(name, {'name': name, 'count': 0, 'amount': ZERO})
            entry['count'] += 1
            entry['amount'] += loan.principal_amount
        return [{**entry, 'amount': _money(entry['amount'])} for entry in grouped.values()]

    def monthly_transactions(self, months: int = 6,
                             transactions: Optional[List[Transaction]] = None) -> List[Dict[str, Any]]:
        """Deposit, withdrawal and loan payment totals for the last N months, oldest first"""
        transactions = self._all_transactions() if transactions is None else transactions
        today = self._today()
        result = []
        for back in range(months - 1, -1, -1):
            month = _month_start(today, back)
            in_month = [t for t in transactions if _same_month(t.transaction_date, month)]

            def total(kind: TransactionType) -> str:
                return _money(_sum(t.amount for t in in_month if t.transaction_type == kind))

            result.append({
                'month': month.strftime('%b'),
                'year': month.year,
                'deposits': total(TransactionType.DEPOSIT),
                'withdrawals': total(TransactionType.WITHDRAWAL),
                'loan_payments': total(TransactionType.LOAN_PAYMENT),
            })
        return result

    def member_growth(self, months: int = 6, members: Optional[List[Member]] = None) -> List[Dict[str, Any]]:
        """New members per month and the running total at each month end"""
        members = self._all_members() if members is None else members
        today = self._today()
        result = []
        for back in range(months - 1, -1, -1):
            month = _month_start(today, back)
            next_month = _month_start(today, back - 1)
            result.append({
                'month': month.strftime('%b'),
                'year': month.year,
                'new': sum(1 for m in members if _same_month(m.created_at.date(), month)),
                'total': sum(1 for m in members if m.created_at.date() < next_month),
            })
        return result

    # Dashboards

    @staticmethod
    def _activity_feed(transactions: List[Transaction], limit: int = 8) -> List[Dict[str, Any]]:
        kinds = {
            TransactionType.DEPOSIT: 'deposit',
            TransactionType.WITHDRAWAL: 'withdrawal',
            TransactionType.LOAN_PAYMENT: 'loan_payment',
            TransactionType.LOAN_DISBURSEMENT: 'loan_application',
        }
        return [{
            'type': kinds.get(t.transaction_type, 'deposit'),
            'title': t.transaction_type.value,
            'description': t.member_name or 'Member',
            'amount': str(t.amount),
            'date': t.created_at.isoformat(),
        } for t in transactions[:limit]]

    def admin_dashboard(self) -> Dict[str, Any]:
        members = self._all_members()
        loans = self._all_loans()
        accounts = self._all_accounts()
        transactions = self._all_transactions(limit=20)
        active_loans = [l for l in loans if l.status in ACTIVE_STATUSES]
        return {
            'stats': {
                'active_members': sum(1 for m in members if m.status == MemberStatus.ACTIVE),
                'active_loans': len(active_loans),
                'pending_loans': sum(1 for l in loans if l.status == LoanStatus.PENDING),
                'total_savings': _money(_sum(a.balance for a in accounts)),
                'loan_portfolio': _money(_sum(l.outstanding_balance for l in active_loans)),
                'overdue_loans': sum(1 for l in loans if l.status == LoanStatus.DEFAULTED),
            },
            'recent_members': [m.to_dict() for m in members[:5]],
            'recent_loans': [l.to_dict() for l in loans[:5]],
            'recent_activity': self._activity_feed(transactions),
        }

    def manager_dashboard(self) -> Dict[str, Any]:
        members = self._all_members()
        loans = self._all_loans()
        accounts = self._all_accounts()
        transactions = self._all_transactions(limit=20)
        active_loans = [l for l in loans if l.status in ACTIVE_STATUSES]
        pending = [l for l in loans if l.status == LoanStatus.PENDING]
        paid = sum(1 for l in loans if l.status == LoanStatus.PAID)
        booked = len(active_loans) + paid
        return {
            'stats': {
                'active_members': sum(1 for m in members if m.status == MemberStatus.ACTIVE),
                'active_loans': len(active_loans),
                'total_savings': _money(_sum(a.balance for a in accounts)),
                'loan_portfolio': _money(_sum(l.outstanding_balance for l in active_loans)),
                'pending_loans': len(pending),
                'collection_rate': round(paid * 100 / booked) if booked else 0,
            },
            'pending_approvals': [l.to_dict() for l in pending[:5]],
            'recent_activity': self._activity_feed(transactions),
        }

    def loan_officer_dashboard(self) -> Dict[str, Any]:
        loans = self._all_loans()
        month_start = _month_start(self._today())
        return {
            'stats': {
                'pending': sum(1 for l in loans if l.status == LoanStatus.PENDING),
                'approved': sum(1 for l in loans if l.status == LoanStatus.APPROVED),
                'active': sum(1 for l in loans if l.status in ACTIVE_STATUSES),
                'this_month': sum(1 for l in loans if l.application_date >= month_start),
            },
            'pending_loans': [l.to_dict() for l in loans if l.status == LoanStatus.PENDING][:10],
        }

    def teller_dashboard(self) -> Dict[str, Any]:
        transactions = self._all_transactions(limit=50)
        today = self._today()
        todays = [t for t in transactions if t.transaction_date == today]
        return {
            'today': {
                'deposits': _money(_sum(t.amount for t in todays
                                        if t.transaction_type == TransactionType.DEPOSIT)),
                'withdrawals': _money(_sum(t.amount for t in todays
                                           if t.transaction_type == TransactionType.WITHDRAWAL)),
                'count': len(todays),
            },
            'recent_transactions': [t.to_dict() for t in transactions[:10]],
        }

    def flagged_items(self, transactions: List[Transaction], loans: List[Loan],
                      limit: int = 10) -> List[Dict[str, Any]]:
        """Large transactions (warning) and defaulted loans (error) for audit attention"""
        flagged = []
        for t in transactions:
            if t.amount > self.large_transaction_threshold:
                flagged.append({
                    'type': 'transaction',
                    'severity': 'warning',
                    'title': f"Large {t.transaction_type.value}: {format_peso(t.amount)}",
                    'description': f"By {t.member_name} on {t.transaction_date.strftime('%b %d, %Y')}",
                    'record_id': t.id,
                    'date': t.created_at.isoformat(),
                })
        for l in loans:
            if l.status == LoanStatus.DEFAULTED:
                flagged.append({
                    'type': 'loan',
                    'severity': 'error',
                    'title': f"Defaulted Loan: {l.loan_number}",
                    'description': f"{l.member_name} - {format_peso(l.outstanding_balance)} outstanding",
                    'record_id': l.id,
                    'date': l.updated_at.isoformat(),
                })
        return flagged[:limit]

    def auditor_dashboard(self) -> Dict[str, Any]:
        members = self._all_members()
        loans = self._all_loans()
        accounts = self._all_accounts()
        logs = self._load("audit logs", lambda: self.audit.get_logs(limit=50))
        transactions = self._all_transactions(limit=100)
        return {
            'stats': {
                'total_members': len(members),
                'total_loans': len(loans),
                'total_savings': _money(_sum(a.balance for a in accounts)),
                'audit_logs': len(logs),
            },
            'recent_logs': [log.to_dict() for log in logs[:10]],
            'flagged_items': self.flagged_items(transactions, loans),
        }

    def member_portal(self, email: str) -> Dict[str, Any]:
        """Self-service view of the member linked to a login email"""
        member = self.members.find_by_email(email)
        if not member:
            return {'member': None, 'loans': [], 'savings': [], 'transactions': [],
                    'total_outstanding': _money(ZERO), 'total_savings': _money(ZERO)}

        loans = self._load("member loans", lambda: self.loans.list_loans(member_id=member.id))
        accounts = self._load("member savings", lambda: self.savings.list_accounts(member_id=member.id))
        transactions = self._load("member transactions",
                                  lambda: self.ledger.list_transactions(member_id=member.id, limit=50))
        return {
            'member': member.to_dict(),
            'loans': [l.to_dict() for l in loans],
            'savings': [a.to_dict() for a in accounts],
            'transactions': [t.to_dict() for t in transactions],
            'total_outstanding': _money(_sum(l.outstanding_balance for l in loans
                                             if l.status in ACTIVE_STATUSES)),
            'total_savings': _money(_sum(a.balance for a in accounts)),
        }

    def reports_overview(self) -> Dict[str, Any]:
        """Everything the reports page charts"""
        members = self._all_members()
        loans = self._all_loans()
        accounts = self._all_accounts()
        transactions = self._all_transactions()
        return {
            'membership': self.membership_stats(members),
            'loans': self.loan_stats(loans),
            'savings': self.savings_stats(accounts),
            'loans_by_type': self.loans_by_type(loans),
            'monthly_transactions': self.monthly_transactions(transactions=transactions),
            'member_growth': self.member_growth(members=members),
            'reports': REPORT_CATALOG,
        }

    # Reports

    def generate_report(self, report_type: ReportType, year: Optional[int] = None,
                        generated_by: Optional[str] = None) -> ReportResult:
        """
        Build one of the standard reports for a calendar year

        Args:
            report_type: Which report card
            year: Reporting year, defaults to the current year
            generated_by: Email of the requesting user
        """
        year = year or self._today().year
        period_start = date(year, 1, 1)
        period_end = date(year, 12, 31)

        builders = {
            ReportType.MEMBERSHIP: self._membership_report,
            ReportType.LOAN_PORTFOLIO: self._loan_portfolio_report,
            ReportType.SAVINGS: self._savings_report,
            ReportType.FINANCIAL_STATEMENTS: self._financial_statements,
            ReportType.CDA_COMPLIANCE: self._cda_compliance_report,
            ReportType.TRANSACTION_SUMMARY: self._transaction_summary,
        }
        data, totals = builders[report_type](period_start, period_end)
        title = next(r['title'] for r in REPORT_CATALOG if r['id'] == report_type.value)

        result = ReportResult(
            report_id=report_type.value,
            title=title,
            generated_at=datetime.now(timezone.utc),
            period_start=period_start,
            period_end=period_end,
            data=data,
            totals=totals,
            metadata={'row_count': len(data), 'year': year, 'generated_by': generated_by}
        )
        logger.info("Generated %s report for %s (%d rows)", report_type.value, year, len(data))
        return result

    def _membership_report(self, start: date, end: date):
        members = self._all_members()
        rows = [{
            'member_code': m.member_code,
            'name': m.full_name,
            'membership_type': m.membership_type.value,
            'status': m.status.value,
            'gender': m.gender.value if m.gender else '',
            'membership_date': m.membership_date.isoformat() if m.membership_date else '',
            'share_capital': str(m.share_capital),
        } for m in members]
        totals = self.membership_stats(members)
        totals['joined_in_period'] = sum(1 for m in members
                                         if m.membership_date and start <= m.membership_date <= end)
        totals['total_share_capital'] = _money(_sum(m.share_capital for m in members))
        return rows, totals

    def _loan_portfolio_report(self, start: date, end: date):
        loans = self._all_loans()
        rows = [{
            'loan_number': l.loan_number,
            'member_name': l.member_name,
            'loan_type': l.loan_type_name or 'Other',
            'status': l.status.value,
            'principal_amount': str(l.principal_amount),
            'outstanding_balance': str(l.outstanding_balance),
            'total_paid': str(l.total_paid),
            'application_date': l.application_date.isoformat(),
            'maturity_date': l.maturity_date.isoformat(),
        } for l in loans if start <= l.application_date <= end]
        totals = self.loan_stats(loans)
        totals['by_type'] = self.loans_by_type(loans)
        return rows, totals

    def _savings_report(self, start: date, end: date):
        accounts = self._all_accounts()
        rows = [{
            'account_number': a.account_number,
            'member_name': a.member_name,
            'account_type': a.account_type.value,
            'status': a.status.value,
            'balance': str(a.balance),
            'interest_rate': str(a.interest_rate),
            'total_deposits': str(a.total_deposits),
            'total_withdrawals': str(a.total_withdrawals),
            'total_interest_earned': str(a.total_interest_earned),
        } for a in accounts]
        return rows, self.savings_stats(accounts)

    def _financial_statements(self, start: date, end: date):
        loans = self._all_loans()
        accounts = self._all_accounts()
        members = self._all_members()
        transactions = [t for t in self._all_transactions() if start <= t.transaction_date <= end]

        receivables = _sum(l.outstanding_balance for l in loans if l.status in ACTIVE_STATUSES)
        past_due = _sum(l.outstanding_balance for l in loans if l.status == LoanStatus.DEFAULTED)
        deposits = _sum(a.balance for a in accounts)
        share_capital = _sum(m.share_capital for m in members)
        service_fees = _sum(l.service_fee for l in loans
                            if l.disbursement_date and start <= l.disbursement_date <= end)
        interest_earned = _sum(a.total_interest_earned for a in accounts)

        def flow(kind: TransactionType) -> Decimal:
            return _sum(t.amount for t in transactions if t.transaction_type == kind)

        rows = [
            {'section': 'Balance Sheet', 'item': 'Loans receivable', 'amount': _money(receivables)},
            {'section': 'Balance Sheet', 'item': 'Past due loans', 'amount': _money(past_due)},
            {'section': 'Balance Sheet', 'item': 'Savings deposits', 'amount': _money(deposits)},
            {'section': 'Balance Sheet', 'item': 'Share capital', 'amount': _money(share_capital)},
            {'section': 'Income Statement', 'item': 'Service fees', 'amount': _money(service_fees)},
            {'section': 'Income Statement', 'item': 'Interest on savings', 'amount': _money(interest_earned)},
            {'section': 'Cash Flow', 'item': 'Loan disbursements',
             'amount': _money(flow(TransactionType.LOAN_DISBURSEMENT))},
            {'section': 'Cash Flow', 'item': 'Loan collections',
             'amount': _money(flow(TransactionType.LOAN_PAYMENT))},
            {'section': 'Cash Flow', 'item': 'Deposits received',
             'amount': _money(flow(TransactionType.DEPOSIT))},
            {'section': 'Cash Flow', 'item': 'Withdrawals paid',
             'amount': _money(flow(TransactionType.WITHDRAWAL))},
        ]
        totals = {
            'total_assets': _money(receivables + past_due),
            'total_liabilities': _money(deposits),
            'members_equity': _money(share_capital),
        }
        return rows, totals

    def _cda_compliance_report(self, start: date, end: date):
        members = self._all_members()
        loans = self._all_loans()
        accounts = self._all_accounts()

        portfolio = _sum(l.outstanding_balance for l in loans
                         if l.status in ACTIVE_STATUSES + (LoanStatus.DEFAULTED,))
        at_risk = _sum(l.outstanding_balance for l in loans if l.status == LoanStatus.DEFAULTED)
        par = (at_risk * 100 / portfolio).quantize(Decimal('0.01')) if portfolio else ZERO
        regular = sum(1 for m in members if m.membership_type == MembershipType.REGULAR)

        rows = [
            {'indicator': 'Total members', 'value': str(len(members))},
            {'indicator': 'Regular members', 'value': str(regular)},
            {'indicator': 'Active members',
             'value': str(sum(1 for m in members if m.status == MemberStatus.ACTIVE))},
            {'indicator': 'Paid-up share capital', 'value': _money(_sum(m.share_capital for m in members))},
            {'indicator': 'Savings deposits', 'value': _money(_sum(a.balance for a in accounts))},
            {'indicator': 'Loans outstanding', 'value': _money(portfolio)},
            {'indicator': 'Portfolio at risk (%)', 'value': str(par)},
        ]
        totals = {'portfolio_at_risk_percent': str(par), 'reporting_year': start.year}
        return rows, totals

    def _transaction_summary(self, start: date, end: date):
        transactions = [t for t in self._all_transactions() if start <= t.transaction_date <= end]
        rows = []
        for month_no in range(1, 13):
            in_month = [t for t in transactions if t.transaction_date.month == month_no]
            totals = self.ledger.totals_by_type(in_month)
            rows.append({
                'month': date(start.year, month_no, 1).strftime('%b'),
                'deposits': _money(totals[TransactionType.DEPOSIT.value]),
                'withdrawals': _money(totals[TransactionType.WITHDRAWAL.value]),
                'loan_payments': _money(totals[TransactionType.LOAN_PAYMENT.value]),
                'loan_disbursements': _money(totals[TransactionType.LOAN_DISBURSEMENT.value]),
                'count': len(in_month),
            })
        year_totals = self.ledger.totals_by_type(transactions)
        return rows, {key: _money(value) for key, value in year_totals.items()}

    def export_report(self, result: ReportResult, format: ReportFormat,
                      exported_by: Optional[str] = None) -> Union[Dict, str]:
        """
        Export report result in specified format
        """
        if format == ReportFormat.DICT:
            exported = {
                'report_id': result.report_id,
                'title': result.title,
                'generated_at': result.generated_at.isoformat(),
                'period_start': result.period_start.isoformat(),
                'period_end': result.period_end.isoformat(),
                'data': result.data,
                'totals': result.totals,
                'metadata': result.metadata
            }

        elif format == ReportFormat.JSON:
            exported = json.dumps(self.export_report(result, ReportFormat.DICT), indent=2, default=str)

        elif format == ReportFormat.CSV:
            output = io.StringIO()
            if result.data:
                headers = list(result.data[0].keys())
                writer = csv.DictWriter(output, fieldnames=headers)
                writer.writeheader()
                for row in result.data:
                    writer.writerow(row)
            exported = output.getvalue()
            output.close()

        else:
            raise ValueError(f"Unsupported export format: {format}")

        if exported_by and format != ReportFormat.DICT:
            self.audit.log(AuditAction.EXPORT, AuditModule.REPORTS,
                           f"Exported {result.title} ({format.value})",
                           user_email=exported_by, metadata={'year': result.metadata.get('year')})
        return exported
