from decimal import Decimal
from typing import Iterable, Optional, Sequence, Tuple
from unittest.mock import MagicMock

import pytest

from app import create_app, db
from app.models import ApprovalRule, Company, FlowType, RuleApprover, User, UserRole
from app.services.actor import ActingUser

PASSWORD = "secret123"


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_company(name: str = "Acme", currency_code: str = "USD", **settings) -> Company:
    company = Company(name=name, country="United States", currency_code=currency_code, **settings)
    db.session.add(company)
    db.session.commit()
    return company


def make_user(
    company: Company,
    first_name: str,
    role: UserRole,
    manager: Optional[User] = None,
    is_active: bool = True,
) -> User:
    user = User(
        first_name=first_name,
        last_name="Tester",
        email=f"{first_name.lower()}@{company.name.lower()}.test",
        role=role,
        company=company,
        manager=manager,
        is_active=is_active,
    )
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


def make_rule(
    company: Company,
    approvers: Sequence[Tuple[User, int]],
    threshold: str = "0",
    categories: Iterable[str] = (),
    flow_type: FlowType = FlowType.SEQUENTIAL,
    is_active: bool = True,
    name: str = "Rule",
) -> ApprovalRule:
    rule = ApprovalRule(
        company=company,
        name=name,
        amount_threshold=Decimal(threshold),
        categories=list(categories),
        departments=[],
        flow_type=flow_type,
        is_active=is_active,
        escalation_approver_ids=[],
        approvers=[RuleApprover(user_id=user.id, order=order) for user, order in approvers],
    )
    db.session.add(rule)
    db.session.commit()
    return rule


def actor(user: User) -> ActingUser:
    return ActingUser.from_user(user)


def api_response(payload) -> MagicMock:
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    return response


def rates_response(rates) -> MagicMock:
    return api_response({"rates": rates})


@pytest.fixture
def company(app):
    return make_company()


@pytest.fixture
def admin(company):
    return make_user(company, "Ada", UserRole.ADMIN)


@pytest.fixture
def mgr1(company):
    return make_user(company, "Maya", UserRole.MANAGER)


@pytest.fixture
def mgr2(company):
    return make_user(company, "Milo", UserRole.MANAGER)


@pytest.fixture
def employee(company, mgr1):
    return make_user(company, "Eve", UserRole.EMPLOYEE, manager=mgr1)


@pytest.fixture
def other_employee(company, mgr2):
    return make_user(company, "Evan", UserRole.EMPLOYEE, manager=mgr2)


@pytest.fixture
def other_company(app):
    return make_company(name="Globex", currency_code="EUR")


@pytest.fixture
def outsider(other_company):
    return make_user(other_company, "Otto", UserRole.MANAGER)
