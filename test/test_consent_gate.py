import pytest
from sqlalchemy.exc import OperationalError

from services.consent_gate import (
    ConsentOutcome, check_consent, is_mutating_method, CONSENT_REQUIRED_CODE, REDIRECT_TO_CONSENT,
)
from services.errors import ServerError


class BrokenSession:
    """查询即失败的会话"""

    def query(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))


def test_unconsented_child_is_blocked(db, make_user):
    user_id = make_user(parental_consent=False, consent_verified=False)
    decision = check_consent(db, user_id, True, "/api/journal-entries")
    assert decision.outcome == ConsentOutcome.CONSENT_REQUIRED
    assert not decision.allowed
    assert decision.code == CONSENT_REQUIRED_CODE
    assert decision.action == REDIRECT_TO_CONSENT


def test_child_with_either_flag_is_allowed(db, make_user):
    terms_only = make_user(parental_consent=True, consent_verified=False)
    verified = make_user(parental_consent=False, consent_verified=True)

    decision = check_consent(db, terms_only, True, "/api/journal-entries")
    assert decision.outcome == ConsentOutcome.ALLOW_TERMS_ONLY
    assert decision.allowed

    decision = check_consent(db, verified, True, "/api/journal-entries")
    assert decision.outcome == ConsentOutcome.ALLOW


def test_adults_never_need_consent(db, make_user):
    user_id = make_user(role="caregiver", age=35, parental_consent=False, consent_verified=False)
    assert check_consent(db, user_id, True, "/api/plants").outcome == ConsentOutcome.ALLOW


def test_reads_and_exempt_paths_skip_the_check(db, make_user):
    user_id = make_user(parental_consent=False, consent_verified=False)
    assert check_consent(db, user_id, False, "/api/journal-entries").outcome == ConsentOutcome.ALLOW_READ
    for path in ("/api/users", "/api/verify-consent", "/api/resend-consent-email"):
        assert check_consent(db, user_id, True, path).outcome == ConsentOutcome.ALLOW_EXEMPT


def test_unidentified_and_unknown_users(db):
    decision = check_consent(db, None, True, "/api/plants")
    assert decision.outcome == ConsentOutcome.ALLOW_UNIDENTIFIED
    assert decision.allowed

    decision = check_consent(db, 9999, True, "/api/plants")
    assert decision.outcome == ConsentOutcome.USER_NOT_FOUND
    assert decision.code == "USER_NOT_FOUND"
    assert not decision.allowed


def test_database_failure_raises_server_error():
    with pytest.raises(ServerError):
        check_consent(BrokenSession(), 1, True, "/api/plants")

    # 读请求和豁免路径不查库
    assert check_consent(BrokenSession(), 1, False, "/api/plants").outcome == ConsentOutcome.ALLOW_READ
    assert check_consent(BrokenSession(), 1, True, "/api/users").outcome == ConsentOutcome.ALLOW_EXEMPT


def test_mutating_methods():
    assert is_mutating_method("POST")
    assert is_mutating_method("patch")
    assert not is_mutating_method("GET")
    assert not is_mutating_method("DELETE")
