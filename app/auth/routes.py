"""Authentication routes."""
from __future__ import annotations

from typing import Any

from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from app.services import currency_service, user_service
from app.utils.helpers import json_payload, json_response

from . import auth_bp


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token() -> Any:
    """Token for the X-CSRFToken header on state-changing requests."""
    return json_response({"csrf_token": generate_csrf()})


@auth_bp.route("/countries", methods=["GET"])
def countries() -> Any:
    """Countries and their currencies, for picking a company base currency."""
    return json_response({"countries": currency_service.list_countries()})


@auth_bp.route("/signup", methods=["POST"])
def signup() -> Any:
    """Register a company and its first admin."""
    payload = json_payload()
    required_fields = {"company_name", "country", "first_name", "email", "password"}
    if missing := required_fields - payload.keys():
        return json_response({"error": f"Missing required fields: {', '.join(sorted(missing))}"}, status=400)

    user = user_service.signup(
        company_name=payload["company_name"],
        country=payload["country"],
        first_name=payload["first_name"],
        last_name=payload.get("last_name", ""),
        email=payload["email"],
        password=payload["password"],
        currency_code=payload.get("currency_code"),
    )
    login_user(user)
    return json_response(
        {"message": "Signup successful.", "user": user.to_dict(), "company": user.company.to_dict()},
        status=201,
    )


@auth_bp.route("/login", methods=["POST"])
def login() -> Any:
    payload = json_payload()
    user = user_service.authenticate(payload.get("email", ""), payload.get("password", ""))
    if user is None:
        return json_response({"error": "Invalid email or password."}, status=401)

    login_user(user, remember=bool(payload.get("remember")))
    return json_response({"message": "Logged in.", "user": user.to_dict()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout() -> Any:
    logout_user()
    return json_response({"message": "Logged out."})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me() -> Any:
    return json_response({"user": current_user.to_dict(), "company": current_user.company.to_dict()})
