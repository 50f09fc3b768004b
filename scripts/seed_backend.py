#!/usr/bin/env python3
import argparse
import uuid
from datetime import UTC, datetime, timedelta

from app.core.security import ROLE_ADMIN, ROLE_PARTICIPANT, create_access_token
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.models.exam import ExamQuestion, ExamTest


DEMO_QUESTIONS = [
    ('multiple_choice', 'Which HTTP method is idempotent by definition?', ['POST', 'PUT', 'PATCH'], 'PUT', 1),
    ('true_false', 'A 204 response carries a body.', ['true', 'false'], 'false', 1),
    ('short_answer', 'Name the SQL clause that resolves an insert conflict.', [], 'ON CONFLICT', 2),
    ('essay', 'Explain why autosave must be idempotent.', [], None, 4),
]


def main() -> int:
    parser = argparse.ArgumentParser(description='Create the schema and a demo test for local development.')
    parser.add_argument('--duration', type=int, default=30, help='Test duration in minutes.')
    parser.add_argument('--window-hours', type=int, default=24, help='Hours the test window stays open.')
    parser.add_argument('--skip-schema', action='store_true', help='Assume tables already exist.')
    args = parser.parse_args()

    if not args.skip_schema:
        Base.metadata.create_all(bind=engine)

    now = datetime.now(UTC)
    db = SessionLocal()
    try:
        test = ExamTest(
            title='Demo: HTTP and persistence basics',
            duration_minutes=args.duration,
            start_window=now - timedelta(minutes=5),
            end_window=now + timedelta(hours=args.window_hours),
            passing_score_percent=None,
            is_active=True,
        )
        for index, (kind, prompt, options, correct, points) in enumerate(DEMO_QUESTIONS):
            test.questions.append(
                ExamQuestion(
                    kind=kind,
                    prompt=prompt,
                    options=options,
                    correct_answer=correct,
                    points=points,
                    order_index=index,
                )
            )
        db.add(test)
        db.commit()

        print(f'test_id={test.id}')
        for question in test.questions:
            print(f'question {question.order_index}: {question.id} ({question.kind})')
    finally:
        db.close()

    print(f'participant_token={create_access_token(str(uuid.uuid4()), ROLE_PARTICIPANT)}')
    print(f'admin_token={create_access_token(str(uuid.uuid4()), ROLE_ADMIN)}')
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
