"""
Trust decision engine tests (no sockets): session -> token -> referer -> deny.
"""

import pytest
from multidict import CIMultiDict

from atrium.server.requestContext import RequestContext
from atrium.server.secretComparator import SecretComparator
from atrium.server.sessionStore import COOKIE_NAME, SessionStore
from atrium.server.trust import (
    TrustDecisionEngine, REASON_SESSION, REASON_TOKEN, REASON_REFERER, REASON_DENIED
)

PORT = 5173


class AccessRecorder:

    def __init__(self):
        self.count = 0

    def __call__(self):
        self.count += 1


@pytest.fixture
def sessions():
    return SessionStore('abc123')


@pytest.fixture
def accesses():
    return AccessRecorder()


@pytest.fixture
def engine(sessions, accesses):
    return TrustDecisionEngine(SecretComparator('abc123'), sessions,
                               getPort=lambda: PORT, onAccess=accesses)


def makeContext(headers=None, query=None, cookies=None, path='/index.html') -> RequestContext:
    return RequestContext(
        method='GET',
        path=path,
        headers=CIMultiDict(headers or {}),
        query=query or {},
        cookies=cookies or {},
    )


class TestSessionRule:

    def test_authenticated_session_cookie_allows(self, engine, sessions, accesses):
        sessions.markAuthenticated('sid-1')
        ctx = makeContext(cookies={COOKIE_NAME: sessions.encodeCookie('sid-1')})

        verdict = engine.evaluate(ctx)

        assert verdict.allowed
        assert verdict.reason == REASON_SESSION
        assert verdict.issueCookie is None
        assert accesses.count == 1

    def test_valid_cookie_for_unknown_session_is_not_enough(self, engine, sessions):
        ctx = makeContext(cookies={COOKIE_NAME: sessions.encodeCookie('never-marked')})
        assert not engine.evaluate(ctx).allowed

    def test_forged_cookie_is_not_enough(self, engine, sessions):
        sessions.markAuthenticated('sid-1')
        ctx = makeContext(cookies={COOKIE_NAME: SessionStore('guess').encodeCookie('sid-1')})
        assert not engine.evaluate(ctx).allowed


class TestTokenRule:

    def test_query_token_allows_and_authenticates_session(self, engine, sessions, accesses):
        verdict = engine.evaluate(makeContext(query={'token': 'abc123'}))

        assert verdict.allowed
        assert verdict.reason == REASON_TOKEN
        assert verdict.issueCookie
        assert sessions.decodeCookie(verdict.issueCookie) == verdict.sessionId
        assert sessions.isAuthenticated(verdict.sessionId)
        assert accesses.count == 1

    def test_header_token_allows(self, engine):
        verdict = engine.evaluate(makeContext(headers={'X-Access-Token': 'abc123'}))
        assert verdict.allowed
        assert verdict.reason == REASON_TOKEN

    def test_header_name_is_case_insensitive(self, engine):
        assert engine.evaluate(makeContext(headers={'x-access-token': 'abc123'})).allowed

    def test_header_wins_over_query(self, engine):
        assert engine.evaluate(makeContext(headers={'X-Access-Token': 'abc123'},
                                           query={'token': 'wrong'})).allowed
        assert not engine.evaluate(makeContext(headers={'X-Access-Token': 'wrong'},
                                               query={'token': 'abc123'})).allowed

    def test_empty_header_falls_back_to_query(self, engine):
        assert engine.evaluate(makeContext(headers={'X-Access-Token': ''},
                                           query={'token': 'abc123'})).allowed

    def test_token_reuses_existing_session_id(self, engine, sessions):
        cookie = sessions.encodeCookie('sid-after-restart')
        verdict = engine.evaluate(makeContext(query={'token': 'abc123'}, cookies={COOKIE_NAME: cookie}))

        assert verdict.sessionId == 'sid-after-restart'
        assert sessions.isAuthenticated('sid-after-restart')

    def test_wrong_token_denies(self, engine, sessions, accesses):
        verdict = engine.evaluate(makeContext(query={'token': 'wrong'}))

        assert not verdict.allowed
        assert verdict.reason == REASON_DENIED
        assert len(sessions) == 0
        assert accesses.count == 0

    def test_authenticated_session_then_cookie_alone_allows(self, engine):
        first = engine.evaluate(makeContext(query={'token': 'abc123'}))
        second = engine.evaluate(makeContext(cookies={COOKIE_NAME: first.issueCookie}))

        assert second.allowed
        assert second.reason == REASON_SESSION


class TestRefererRule:

    def test_own_origin_referer_allows_without_session(self, engine, sessions, accesses):
        verdict = engine.evaluate(makeContext(headers={'Referer': f'http://localhost:{PORT}/index.html'}))

        assert verdict.allowed
        assert verdict.reason == REASON_REFERER
        assert verdict.issueCookie is None
        assert len(sessions) == 0
        assert accesses.count == 1

    def test_other_instance_referer_denies(self, engine):
        verdict = engine.evaluate(makeContext(headers={'Referer': f'http://localhost:{PORT + 1}/x'}))
        assert not verdict.allowed

    @pytest.mark.parametrize('referer', [
        f'http://127.0.0.1:{PORT}/x',
        f'http://evil.example:{PORT}/x',
        f'http://localhost.evil.example:{PORT}/x',
        'http://localhost/x',
        '/relative/path',
        'not a url',
        'http://localhost:99999999/x',
        '',
    ])
    def test_anything_but_exact_own_authority_denies(self, engine, referer):
        assert not engine.evaluate(makeContext(headers={'Referer': referer})).allowed

    def test_referer_is_rejected_while_not_bound(self, sessions):
        engine = TrustDecisionEngine(SecretComparator('abc123'), sessions,
                                     getPort=lambda: 0, onAccess=lambda: None)
        assert not engine.evaluate(makeContext(headers={'Referer': 'http://localhost:0/x'})).allowed

    def test_referer_grant_is_per_request(self, engine):
        engine.evaluate(makeContext(headers={'Referer': f'http://localhost:{PORT}/a.html'}))
        assert not engine.evaluate(makeContext()).allowed


class TestIdempotence:

    def test_re_evaluating_does_not_corrupt_state(self, engine, sessions):
        ctx = makeContext(query={'token': 'abc123'}, cookies={COOKIE_NAME: sessions.encodeCookie('sid-1')})

        first = engine.evaluate(ctx)
        second = engine.evaluate(ctx)

        assert first.allowed and second.allowed
        assert len(sessions) == 1
        assert sessions.isAuthenticated('sid-1')

    def test_no_credentials_denies(self, engine, accesses):
        verdict = engine.evaluate(makeContext())
        assert not verdict.allowed
        assert accesses.count == 0
