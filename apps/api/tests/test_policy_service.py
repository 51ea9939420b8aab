import pytest
from pydantic import ValidationError

from webforms.core.errors import PolicyEvaluationError
from webforms.schemas.forms import Credentials, FormDefinition
from webforms.services.policy_service import PolicyCompileError, PolicyEvaluator, is_allowed


def _form(policy: str | None) -> FormDefinition:
    return FormDefinition.model_validate({"name": "guarded", "policy": policy})


ADMIN = Credentials(user="ann", email="ann@example.com", groups=("admin", "staff"))
GUEST = Credentials(user="bob", email="bob@other.org", groups=("guest",))


def test_policy_true_admits():
    assert is_allowed(_form('"admin" in groups'), ADMIN) is True


def test_policy_false_denies():
    assert is_allowed(_form('"admin" in groups'), GUEST) is False


def test_absent_credentials_always_admit():
    assert is_allowed(_form("false"), None) is True


def test_no_policy_admits_everyone():
    assert is_allowed(_form(None), GUEST) is True
    assert is_allowed(_form("   "), GUEST) is True


def test_non_boolean_result_denies():
    # Truthy string must not be treated as true
    assert is_allowed(_form("email"), ADMIN) is False


def test_evaluation_error_denies():
    assert is_allowed(_form("email.startswith(1)"), ADMIN) is False


def test_cel_style_aliases():
    form = _form('"admin" in groups && email.endsWith("@example.com") && !("guest" in groups)')

    assert is_allowed(form, ADMIN) is True
    assert is_allowed(form, GUEST) is False


def test_cel_operators_inside_strings_are_kept():
    evaluator = PolicyEvaluator('user == "a&&b" || user == "!"')

    assert evaluator.evaluate({"user": "a&&b", "email": "", "groups": []}) is True
    assert evaluator.evaluate({"user": "!", "email": "", "groups": []}) is True


def test_python_style_expression():
    form = _form('email.lower().endswith("@example.com") and len(groups) > 1')

    assert is_allowed(form, ADMIN) is True
    assert is_allowed(form, GUEST) is False


@pytest.mark.parametrize(
    "expression",
    [
        '__import__("os").system("id")',
        "user.__class__",
        "[g for g in groups]",
        "open('x')",
        "lambda: True",
        "unknown == 1",
        "groups[0] == 'admin'",
        "user.format()",
        "len(user.lower)",
        "-len(groups) < 0",
        "",
        "user ==",
    ],
)
def test_unsafe_or_malformed_expressions_are_rejected(expression):
    with pytest.raises(PolicyCompileError):
        PolicyEvaluator(expression)


def test_malformed_policy_fails_form_validation():
    with pytest.raises(ValidationError):
        _form("user.__class__")


ATTRS = {"user": "ann", "email": "Ann@Example.com", "groups": ["admin", "staff"]}


@pytest.mark.parametrize(
    "expression,expected",
    [
        ("0 < len(groups) <= 2", True),
        ("1 < len(groups) < 2", False),
        ('user in ["ann", "bob"]', True),
        ('user not in {"bob"}', True),
        ('"admin" in groups and user != "bob"', True),
        ("not groups", False),
        ('email.lower().strip().endswith("@example.com")', True),
        ('user == "bob" or "staff" in groups', True),
        ("null == None", True),
    ],
)
def test_expression_semantics(expression, expected):
    assert PolicyEvaluator(expression).evaluate(ATTRS) is expected


def test_and_or_return_deciding_operand():
    assert PolicyEvaluator('groups and user').evaluate(ATTRS) == "ann"
    assert PolicyEvaluator('"" or email').evaluate(ATTRS) == "Ann@Example.com"


def test_string_method_on_non_string_fails():
    with pytest.raises(PolicyEvaluationError):
        PolicyEvaluator("groups.lower()").evaluate(ATTRS)


def test_evaluate_wraps_runtime_errors():
    evaluator = PolicyEvaluator("len(user) > 0")

    with pytest.raises(PolicyEvaluationError):
        evaluator.evaluate({"user": None, "email": "", "groups": []})
