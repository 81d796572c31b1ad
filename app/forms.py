"""WTForms used to parse and coerce JSON payloads at the HTTP edge."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Type, TypeVar

from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import DecimalField, SelectField, StringField, TextAreaField
from wtforms.fields import DateField
from wtforms.validators import DataRequired, Length, NumberRange, Optional

from app.errors import ValidationError
from app.models import ExpenseCategory

FormT = TypeVar("FormT", bound=FlaskForm)

CATEGORY_CHOICES = [(category.value, category.value.title()) for category in ExpenseCategory]


class ExpenseForm(FlaskForm):
    description = TextAreaField("Description", validators=[Optional(), Length(max=500)])
    amount = DecimalField(
        "Amount",
        places=2,
        rounding=None,
        validators=[DataRequired(), NumberRange(min=Decimal("0.01"))],
    )
    currency = StringField("Currency", validators=[DataRequired(), Length(min=3, max=3)])
    category = SelectField("Category", validators=[DataRequired()], choices=CATEGORY_CHOICES)
    expense_date = DateField("Date of expense", validators=[DataRequired()])
    remarks = TextAreaField("Remarks", validators=[Optional(), Length(max=1000)])


class ExpenseUpdateForm(FlaskForm):
    description = TextAreaField("Description", validators=[Optional(), Length(max=500)])
    amount = DecimalField(
        "Amount",
        places=2,
        rounding=None,
        validators=[Optional(), NumberRange(min=Decimal("0.01"))],
    )
    currency = StringField("Currency", validators=[Optional(), Length(min=3, max=3)])
    category = SelectField("Category", validators=[Optional()], choices=CATEGORY_CHOICES)
    expense_date = DateField("Date of expense", validators=[Optional()])
    remarks = TextAreaField("Remarks", validators=[Optional(), Length(max=1000)])


class ApproveForm(FlaskForm):
    comment = TextAreaField("Comment", validators=[Optional(), Length(max=500)])


class RejectForm(FlaskForm):
    comment = TextAreaField("Comment", validators=[DataRequired(), Length(max=500)])


def load_form(form_class: Type[FormT], payload: Dict[str, Any]) -> FormT:
    """Bind a JSON payload to ``form_class`` and validate it.

    Raises ``ValidationError`` carrying the per-field errors.
    """
    formdata = MultiDict(
        {
            key: str(value)
            for key, value in payload.items()
            if value is not None and not isinstance(value, (dict, list))
        }
    )
    form = form_class(formdata=formdata, meta={"csrf": False})
    if not form.validate():
        raise ValidationError("Validation failed.", details=form.errors)
    return form
