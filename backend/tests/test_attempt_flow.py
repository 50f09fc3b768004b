import uuid
from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.audit import AuditLog
from app.models.exam import TestAttempt, TestAttemptAnswer
from tests.conftest import NOW, FrozenClock, admin_header, auth_header, create_exam, start


def test_end_to_end_two_question_attempt_fails_at_fifty_percent(client: TestClient, db_session: Session) -> None:
    test = create_exam(
        db_session,
        questions=[{'correct_answer': 'b'}, {'correct_answer': 'c'}],
        passing_score_percent=60,
    )
    q1, q2 = (str(question.id) for question in test.questions)
    user_id = uuid.uuid4()
    headers = auth_header(user_id)

    attempt = start(client, test, user_id)
    assert attempt['status'] == 'in_progress'
    assert attempt['remaining_seconds'] == 30 * 60

    first_save = client.put(f"/api/v1/attempts/{attempt['id']}/answers", headers=headers, json={'answers': {q1: 'b'}})
    assert first_save.status_code == 204, first_save.text
    second_save = client.put(
        f"/api/v1/attempts/{attempt['id']}/answers", headers=headers, json={'answers': {q1: 'b', q2: 'x'}}
    )
    assert second_save.status_code == 204, second_save.text

    submit = client.post(f"/api/v1/attempts/{attempt['id']}/submit", headers=headers)
    assert submit.status_code == 200, submit.text
    payload = submit.json()
    assert payload['attempt_id'] == attempt['id']
    assert payload['earned_points'] == 1
    assert payload['total_points'] == 2
    assert payload['score'] == 50
    assert payload['status'] == 'failed'
    assert payload['passed'] is False
    assert payload['expired'] is False

    stored = db_session.scalar(select(TestAttempt).where(TestAttempt.id == uuid.UUID(attempt['id'])))
    db_session.refresh(stored)
    assert stored.status == 'failed'
    assert stored.score == 50
    assert stored.end_time is not None

    graded = {
        str(row.question_id): (row.answer, row.is_correct, row.score)
        for row in db_session.scalars(select(TestAttemptAnswer)).all()
    }
    assert graded == {q1: ('b', True, 1), q2: ('x', False, 0)}

    actions = db_session.scalars(select(AuditLog.action).order_by(AuditLog.created_at)).all()
    assert 'attempt.start' in actions
    assert 'attempt.submit' in actions


def test_start_is_idempotent_while_in_progress(client: TestClient, db_session: Session) -> None:
    test = create_exam(db_session, questions=[{'correct_answer': 'a'}])
    user_id = uuid.uuid4()

    first = client.post('/api/v1/attempts', headers=auth_header(user_id), json={'test_id': str(test.id)})
    second = client.post('/api/v1/attempts', headers=auth_header(user_id), json={'test_id': str(test.id)})

    assert first.status_code == 201
    assert second.status_code == 200
    assert first.json()['id'] == second.json()['id']
    assert first.json()['start_time'] == second.json()['start_time']
    assert datetime.fromisoformat(second.json()['start_time']) == NOW
    count = db_session.scalar(select(func.count()).select_from(TestAttempt).where(TestAttempt.user_id == user_id))
    assert count == 1


def test_start_after_completion_requires_retake_grant(client: TestClient, db_session: Session) -> None:
    test = create_exam(db_session, questions=[{'correct_answer': 'a'}])
    user_id = uuid.uuid4()
    attempt = start(client, test, user_id)
    client.post(f"/api/v1/attempts/{attempt['id']}/submit", headers=auth_header(user_id), json={'answers': {}})

    rejected = client.post('/api/v1/attempts', headers=auth_header(user_id), json={'test_id': str(test.id)})
    assert rejected.status_code == 409
    assert rejected.json()['code'] == 'already_completed'
    assert rejected.json()['reason'] == 'failed'

    grant = client.post(
        f'/api/v1/admin/tests/{test.id}/retake-grants', headers=admin_header(), json={'user_id': str(user_id)}
    )
    assert grant.status_code == 201, grant.text
    assert grant.json()['consumed_at'] is None

    retake = client.post('/api/v1/attempts', headers=auth_header(user_id), json={'test_id': str(test.id)})
    assert retake.status_code == 201, retake.text
    assert retake.json()['id'] != attempt['id']

    client.post(f"/api/v1/attempts/{retake.json()['id']}/submit", headers=auth_header(user_id))
    again = client.post('/api/v1/attempts', headers=auth_header(user_id), json={'test_id': str(test.id)})
    assert again.status_code == 409
    assert again.json()['code'] == 'already_completed'


def test_participants_cannot_grant_retakes(client: TestClient, db_session: Session) -> None:
    test = create_exam(db_session, questions=[{'correct_answer': 'a'}])
    user_id = uuid.uuid4()

    response = client.post(
        f'/api/v1/admin/tests/{test.id}/retake-grants', headers=auth_header(user_id), json={'user_id': str(user_id)}
    )

    assert response.status_code == 403
    assert response.json()['code'] == 'forbidden'


def test_start_outside_window_reports_reason(client: TestClient, db_session: Session, clock: FrozenClock) -> None:
    upcoming = create_exam(
        db_session,
        questions=[{'correct_answer': 'a'}],
        start_window=NOW + timedelta(hours=1),
        end_window=NOW + timedelta(hours=3),
    )
    closed = create_exam(
        db_session,
        questions=[{'correct_answer': 'a'}],
        start_window=NOW - timedelta(hours=3),
        end_window=NOW - timedelta(hours=1),
    )
    inactive = create_exam(db_session, questions=[{'correct_answer': 'a'}], is_active=False)
    headers = auth_header(uuid.uuid4())

    reasons = {}
    for name, test in (('upcoming', upcoming), ('closed', closed), ('inactive', inactive)):
        response = client.post('/api/v1/attempts', headers=headers, json={'test_id': str(test.id)})
        assert response.status_code == 400
        assert response.json()['code'] == 'out_of_window'
        reasons[name] = response.json()['reason']

    assert reasons == {'upcoming': 'not_yet_open', 'closed': 'closed', 'inactive': 'inactive'}
    assert db_session.scalar(select(func.count()).select_from(TestAttempt)) == 0


def test_start_unknown_test_is_not_found(client: TestClient) -> None:
    response = client.post('/api/v1/attempts', headers=auth_header(uuid.uuid4()), json={'test_id': str(uuid.uuid4())})

    assert response.status_code == 404
    assert response.json()['code'] == 'not_found'


def test_requests_without_identity_are_rejected(client: TestClient, db_session: Session) -> None:
    test = create_exam(db_session, questions=[{'correct_answer': 'a'}])

    missing = client.post('/api/v1/attempts', json={'test_id': str(test.id)})
    garbage = client.post(
        '/api/v1/attempts', headers={'Authorization': 'Bearer not-a-token'}, json={'test_id': str(test.id)}
    )

    assert missing.status_code == 401
    assert missing.json()['code'] == 'unauthorized'
    assert garbage.status_code == 401
    assert db_session.scalar(select(func.count()).select_from(TestAttempt)) == 0


def test_list_attempts_scopes_participants_to_themselves(client: TestClient, db_session: Session) -> None:
    test = create_exam(db_session, questions=[{'correct_answer': 'a'}])
    alice, bob = uuid.uuid4(), uuid.uuid4()
    start(client, test, alice)
    start(client, test, bob)

    own = client.get('/api/v1/attempts', headers=auth_header(alice), params={'user_id': str(bob)})
    assert own.status_code == 200
    assert own.json()['meta']['total'] == 1
    assert own.json()['items'][0]['user_id'] == str(alice)

    everyone = client.get('/api/v1/attempts', headers=admin_header(), params={'test_id': str(test.id)})
    assert everyone.json()['meta']['total'] == 2

    filtered = client.get('/api/v1/attempts', headers=admin_header(), params={'status': 'passed'})
    assert filtered.json()['meta']['total'] == 0


def test_get_attempt_is_owner_or_admin_only(client: TestClient, db_session: Session) -> None:
    test = create_exam(db_session, questions=[{'correct_answer': 'a'}])
    owner = uuid.uuid4()
    attempt = start(client, test, owner)

    mine = client.get(f"/api/v1/attempts/{attempt['id']}", headers=auth_header(owner))
    other = client.get(f"/api/v1/attempts/{attempt['id']}", headers=auth_header(uuid.uuid4()))
    admin = client.get(f"/api/v1/attempts/{attempt['id']}", headers=admin_header())

    assert mine.status_code == 200
    assert mine.json()['remaining_seconds'] == 30 * 60
    assert other.status_code == 403
    assert other.json() == {'detail': 'Forbidden', 'code': 'forbidden', 'reason': None}
    assert admin.status_code == 200
