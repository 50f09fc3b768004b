import uuid

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.exam import TestAttempt, TestAttemptAnswer
from tests.conftest import admin_header, auth_header, create_exam, start


def _essay_exam(db: Session):
    return create_exam(
        db,
        questions=[
            {'correct_answer': 'a', 'points': 2},
            {'kind': 'essay', 'options': [], 'correct_answer': None, 'points': 3},
        ],
        passing_score_percent=60,
    )


def test_second_submission_is_rejected(client: TestClient, db_session: Session) -> None:
    test = create_exam(db_session, questions=[{'correct_answer': 'a'}])
    q1 = str(test.questions[0].id)
    user_id = uuid.uuid4()
    attempt = start(client, test, user_id)
    url = f"/api/v1/attempts/{attempt['id']}/submit"

    first = client.post(url, headers=auth_header(user_id), json={'answers': {q1: 'a'}})
    second = client.post(url, headers=auth_header(user_id), json={'answers': {q1: 'b'}})

    assert first.status_code == 200
    assert first.json()['status'] == 'passed'
    assert first.json()['correct_count'] == 1
    assert second.status_code == 409
    assert second.json()['code'] == 'already_submitted'
    assert second.json()['reason'] == 'passed'

    stored = db_session.scalar(select(TestAttemptAnswer.answer))
    assert stored == 'a'


def test_submit_by_another_user_is_forbidden(client: TestClient, db_session: Session) -> None:
    test = create_exam(db_session, questions=[{'correct_answer': 'a'}])
    attempt = start(client, test, uuid.uuid4())

    response = client.post(f"/api/v1/attempts/{attempt['id']}/submit", headers=auth_header(uuid.uuid4()))

    assert response.status_code == 403
    db_session.expire_all()
    assert db_session.scalar(select(TestAttempt.status)) == 'in_progress'


def test_essay_attempt_waits_for_manual_grading(client: TestClient, db_session: Session) -> None:
    test = _essay_exam(db_session)
    mcq, essay = (str(question.id) for question in test.questions)
    user_id = uuid.uuid4()
    attempt = start(client, test, user_id)

    submit = client.post(
        f"/api/v1/attempts/{attempt['id']}/submit",
        headers=auth_header(user_id),
        json={'answers': {mcq: 'a', essay: 'TCP retransmits lost segments.'}},
    )

    assert submit.status_code == 200, submit.text
    payload = submit.json()
    assert payload['status'] == 'completed'
    assert payload['passed'] is False
    assert payload['pending_manual_count'] == 1
    assert payload['score'] == 40

    grade = client.post(
        f"/api/v1/admin/attempts/{attempt['id']}/grades",
        headers=admin_header(),
        json={'grades': [{'question_id': essay, 'score': 2.5, 'is_correct': True}]},
    )

    assert grade.status_code == 200, grade.text
    graded = grade.json()
    assert graded['status'] == 'passed'
    assert graded['score'] == 90
    assert graded['earned_points'] == 4.5
    assert graded['pending_manual_count'] == 0

    view = client.get(f"/api/v1/attempts/{attempt['id']}", headers=auth_header(user_id))
    assert view.json()['status'] == 'passed'
    assert view.json()['score'] == 90

    db_session.expire_all()
    row = db_session.scalar(select(TestAttemptAnswer).where(TestAttemptAnswer.question_id == uuid.UUID(essay)))
    assert (row.is_correct, row.score) == (True, 2.5)

    regrade = client.post(
        f"/api/v1/admin/attempts/{attempt['id']}/grades",
        headers=admin_header(),
        json={'grades': [{'question_id': essay, 'score': 0}]},
    )
    assert regrade.status_code == 409
    assert regrade.json()['code'] == 'invalid_state'


def test_manual_grading_requires_admin(client: TestClient, db_session: Session) -> None:
    test = _essay_exam(db_session)
    essay = str(test.questions[1].id)
    user_id = uuid.uuid4()
    attempt = start(client, test, user_id)
    client.post(
        f"/api/v1/attempts/{attempt['id']}/submit", headers=auth_header(user_id), json={'answers': {essay: 'text'}}
    )

    response = client.post(
        f"/api/v1/admin/attempts/{attempt['id']}/grades",
        headers=auth_header(user_id),
        json={'grades': [{'question_id': essay, 'score': 3}]},
    )

    assert response.status_code == 403


def test_manual_grading_rejects_bad_scores(client: TestClient, db_session: Session) -> None:
    test = _essay_exam(db_session)
    mcq, essay = (str(question.id) for question in test.questions)
    user_id = uuid.uuid4()
    attempt = start(client, test, user_id)
    client.post(
        f"/api/v1/attempts/{attempt['id']}/submit",
        headers=auth_header(user_id),
        json={'answers': {mcq: 'b', essay: 'text'}},
    )
    url = f"/api/v1/admin/attempts/{attempt['id']}/grades"

    too_high = client.post(url, headers=admin_header(), json={'grades': [{'question_id': essay, 'score': 4}]})
    auto = client.post(url, headers=admin_header(), json={'grades': [{'question_id': mcq, 'score': 2}]})
    unknown = client.post(url, headers=admin_header(), json={'grades': [{'question_id': str(uuid.uuid4()), 'score': 1}]})

    assert too_high.status_code == 422
    assert too_high.json()['reason'] == 'score_out_of_range'
    assert auto.status_code == 422
    assert auto.json()['reason'] == 'auto_graded'
    assert unknown.status_code == 404

    db_session.expire_all()
    assert db_session.scalar(select(TestAttempt.status)) == 'completed'


def test_manual_grading_needs_a_completed_attempt(client: TestClient, db_session: Session) -> None:
    test = _essay_exam(db_session)
    essay = str(test.questions[1].id)
    user_id = uuid.uuid4()
    attempt = start(client, test, user_id)

    response = client.post(
        f"/api/v1/admin/attempts/{attempt['id']}/grades",
        headers=admin_header(),
        json={'grades': [{'question_id': essay, 'score': 1}]},
    )

    assert response.status_code == 409
    assert response.json()['reason'] == 'in_progress'


def test_unanswered_essay_waits_for_review_and_scores_zero(client: TestClient, db_session: Session) -> None:
    test = _essay_exam(db_session)
    mcq = str(test.questions[0].id)
    user_id = uuid.uuid4()
    attempt = start(client, test, user_id)

    submit = client.post(
        f"/api/v1/attempts/{attempt['id']}/submit", headers=auth_header(user_id), json={'answers': {mcq: 'a'}}
    )

    assert submit.json()['status'] == 'completed'
    assert submit.json()['pending_manual_count'] == 1
    assert submit.json()['score'] == 40

    blank_essay = client.post(
        f"/api/v1/admin/attempts/{attempt['id']}/grades",
        headers=admin_header(),
        json={'grades': [{'question_id': str(test.questions[1].id), 'score': 3}]},
    )
    assert blank_essay.status_code == 404

    review = client.post(f"/api/v1/admin/attempts/{attempt['id']}/grades", headers=admin_header(), json={'grades': []})

    assert review.status_code == 200, review.text
    assert review.json()['status'] == 'failed'
    assert review.json()['score'] == 40
    assert review.json()['pending_manual_count'] == 0
