"""WTForms definitions for the JSON API payloads."""
from __future__ import annotations

from typing import Any, Type, TypeVar

from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import BooleanField, DecimalField, IntegerField, SelectField, StringField, TextAreaField
from wtforms.validators import Email, InputRequired, Length, NumberRange, Optional

from bonusflow.errors import ValidationError
from bonusflow.models import ApprovalAction, Role

FormT = TypeVar("FormT", bound=FlaskForm)


def _form_value(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)


def form_from_json(form_class: Type[FormT], **kwargs) -> FormT:
    """Bind a form to the request's JSON body and validate it.

    CSRF is enforced globally by ``CSRFProtect``, so the bound form skips it.
    """
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")

    formdata = MultiDict({key: _form_value(value) for key, value in payload.items() if value is not None})
    form = form_class(formdata=formdata, meta={"csrf": False}, **kwargs)
    if not form.validate():
        raise ValidationError("Invalid input.", {"fields": form.errors})
    return form


class ApprovalActionForm(FlaskForm):
    level = IntegerField("Level", validators=[InputRequired(), NumberRange(min=1, max=5)])
    action = SelectField(
        "Action",
        validators=[InputRequired()],
        choices=[(action.value, action.value.title()) for action in ApprovalAction],
    )
    comments = TextAreaField("Comments", validators=[Optional(), Length(max=1000)])


class EmployeeForm(FlaskForm):
    employee_id = StringField("Employee number", validators=[InputRequired(), Length(max=50)])
    first_name = StringField("First name", validators=[InputRequired(), Length(max=100)])
    last_name = StringField("Last name", validators=[Optional(), Length(max=100)])
    email = StringField("Email", validators=[Optional(), Email(check_deliverability=False), Length(max=255)])
    password = StringField("Password", validators=[Optional(), Length(min=6, max=128)])
    role = SelectField(
        "Role",
        validators=[Optional()],
        choices=[(role.value, role.value.title()) for role in Role],
        default=Role.EMPLOYEE.value,
    )
    position = StringField("Position", validators=[Optional(), Length(max=120)])
    department = StringField("Department", validators=[Optional(), Length(max=120)])
    branch_id = IntegerField("Branch", validators=[Optional()])
    bonus_2024 = DecimalField("Bonus 2024", places=2, validators=[Optional(), NumberRange(min=0)])
    supervisor_name = StringField("Supervisor", validators=[Optional(), Length(max=255)])
    level1_approver_name = StringField("Level 1 approver", validators=[Optional(), Length(max=255)])
    level2_approver_name = StringField("Level 2 approver", validators=[Optional(), Length(max=255)])
    level3_approver_name = StringField("Level 3 approver", validators=[Optional(), Length(max=255)])
    level4_approver_name = StringField("Level 4 approver", validators=[Optional(), Length(max=255)])
    level5_approver_name = StringField("Level 5 approver", validators=[Optional(), Length(max=255)])
    is_active = BooleanField("Active", default=True)


class EmployeeUpdateForm(EmployeeForm):
    employee_id = StringField("Employee number", validators=[Optional(), Length(max=50)])
    first_name = StringField("First name", validators=[Optional(), Length(max=100)])


class BranchForm(FlaskForm):
    branch_code = StringField("Branch code", validators=[InputRequired(), Length(max=50)])
    branch_name = StringField("Branch name", validators=[InputRequired(), Length(max=255)])
    location = StringField("Location", validators=[Optional(), Length(max=255)])
    is_active = BooleanField("Active", default=True)
