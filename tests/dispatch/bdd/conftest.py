"""Shared BDD step definitions for dispatch scenarios."""

import asyncio

from pytest_bdd import given, parsers, then, when

from dispatch.delivery.request import NotificationRequest
from dispatch.errors import ErrorKind


def _split(value):
    return [item.strip() for item in value.split(",") if item.strip()]


def _outcome(name):
    return None if name == "Delivered" else ErrorKind(name)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('recipient "{recipient_id}" has tokens "{tokens}"'))
def recipient_has_tokens(store, recipient_id, tokens):
    for token in _split(tokens):
        store.register(recipient_id, token)


@given(parsers.cfparse('the gateway reports "{token}" as "{outcomes}"'))
def gateway_reports(gateway, token, outcomes):
    gateway.script(token, *(_outcome(name) for name in _split(outcomes)))


@given(parsers.cfparse('the gateway always reports "{token}" as "{outcome}"'))
def gateway_always_reports(gateway, token, outcome):
    gateway.always(token, ErrorKind(outcome))


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('a notification is sent to "{recipients}"'), target_fixture="result")
def send_notification(engine, recipients):
    request = NotificationRequest(recipient_ids=_split(recipients), title="Hello", body="Scenario message")
    return asyncio.run(engine.submit(request))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("{count:d} tokens are delivered"))
def tokens_delivered(result, count):
    assert result.delivered == count


@then(parsers.cfparse('the invalidated tokens are "{tokens}"'))
def invalidated_tokens(result, tokens):
    assert {t.token for t in result.invalidated} == set(_split(tokens))


@then(parsers.cfparse('recipient "{recipient_id}" failed with "{reason}"'))
def recipient_failed(result, recipient_id, reason):
    assert result.reasons()[recipient_id] == ErrorKind(reason)


@then(parsers.cfparse('token "{token}" failed with "{reason}"'))
def token_failed(result, token, reason):
    assert result.reasons()[token] == ErrorKind(reason)


@then(parsers.cfparse('token "{token}" was attempted {count:d} times'))
def token_attempts(gateway, token, count):
    assert gateway.attempts[token] == count


@then("the backoff delays strictly increase")
def delays_increase(sleeper):
    assert sleeper.delays
    assert all(a < b for a, b in zip(sleeper.delays, sleeper.delays[1:]))
