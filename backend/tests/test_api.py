"""HTTP surface: envelopes, status codes and role checks."""
import pytest

from conftest import auth_headers
from edutend import create_app
from edutend.models.attendance import AttendanceRecord


def _create(client, user, course, **overrides):
    body = {'course_id': course.id, 'duration_minutes': 15}
    body.update(overrides)
    return client.post('/api/sessions', json=body, headers=auth_headers(user))


def test_health_check(client):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'


def test_create_session(client, clock, lecturer, course):
    response = _create(client, lecturer, course, title='Week 1')
    data = response.get_json()

    assert response.status_code == 201
    assert data['error'] is False
    assert data['data']['qr_image'].startswith('data:image/png;base64,')
    assert data['data']['expires_at'] == '2026-03-02T09:15:00Z'
    assert data['data']['duration'] == 15
    assert data['data']['session']['state'] == 'active'
    assert data['data']['session']['title'] == 'Week 1'
    assert data['data']['session']['time_remaining_seconds'] == 900


def test_create_session_requires_token(client, course):
    response = client.post('/api/sessions', json={'course_id': course.id, 'duration_minutes': 15})

    assert response.status_code == 401
    assert response.get_json()['error'] is True


def test_students_cannot_create_sessions(client, clock, student, course):
    response = _create(client, student, course)

    assert response.status_code == 403


def test_create_session_validates_body(client, clock, lecturer, course):
    assert _create(client, lecturer, course, duration_minutes=0).status_code == 400
    assert _create(client, lecturer, course, duration_minutes='soon').status_code == 400
    assert _create(client, lecturer, course, title='x' * 101).status_code == 400

    response = client.post('/api/sessions', data='not json', headers=auth_headers(lecturer))
    assert response.status_code == 400


def test_create_session_for_foreign_course(client, clock, other_lecturer, course):
    response = _create(client, other_lecturer, course)

    assert response.status_code == 403
    assert response.get_json()['status_code'] == 403


def test_scan_session(client, clock, lecturer, student, course):
    qr_session = _create(client, lecturer, course).get_json()['data']['session']

    response = client.post(
        '/api/sessions/scan',
        json={'payload': qr_session['payload']},
        headers=auth_headers(student)
    )
    data = response.get_json()['data']

    assert response.status_code == 200
    assert data['session_id'] == qr_session['session_id']
    assert data['course_code'] == 'CS101'
    assert data['created_by'] == 'Lecturer A'
    assert data['attendance']['status'] == 'present'
    assert data['attendance']['date'] == '2026-03-02'
    assert AttendanceRecord.query.count() == 1


def test_scan_requires_student(client, clock, lecturer, course):
    qr_session = _create(client, lecturer, course).get_json()['data']['session']

    response = client.post(
        '/api/sessions/scan',
        json={'payload': qr_session['payload']},
        headers=auth_headers(lecturer)
    )

    assert response.status_code == 403


def test_scan_expired_session(client, clock, lecturer, student, course):
    qr_session = _create(client, lecturer, course).get_json()['data']['session']
    clock.advance(minutes=16)

    response = client.post(
        '/api/sessions/scan',
        json={'payload': qr_session['payload']},
        headers=auth_headers(student)
    )
    data = response.get_json()

    assert response.status_code == 410
    assert data['error'] is True
    assert data['data']['session_id'] == qr_session['session_id']
    assert data['data']['course_code'] == 'CS101'
    assert data['data']['state'] == 'expired'
    assert AttendanceRecord.query.count() == 0


def test_scan_malformed_payload(client, clock, student, course):
    response = client.post('/api/sessions/scan', json={'payload': '{oops'}, headers=auth_headers(student))

    assert response.status_code == 400


def test_scan_without_payload(client, clock, student, course):
    response = client.post('/api/sessions/scan', json={}, headers=auth_headers(student))

    assert response.status_code == 400


def test_scan_not_enrolled(client, clock, lecturer, outsider, course):
    qr_session = _create(client, lecturer, course).get_json()['data']['session']

    response = client.post(
        '/api/sessions/scan',
        json={'payload': qr_session['payload']},
        headers=auth_headers(outsider)
    )

    assert response.status_code == 403


def test_cancel_then_scan(client, clock, lecturer, student, course):
    qr_session = _create(client, lecturer, course).get_json()['data']['session']

    response = client.post(
        f"/api/sessions/{qr_session['session_id']}/cancel",
        headers=auth_headers(lecturer)
    )
    assert response.status_code == 200
    assert response.get_json()['data']['session']['state'] == 'cancelled'

    response = client.post(
        '/api/sessions/scan',
        json={'payload': qr_session['payload']},
        headers=auth_headers(student)
    )
    assert response.status_code == 409
    assert response.get_json()['data']['state'] == 'cancelled'


def test_expire_endpoint(client, clock, lecturer, other_lecturer, course):
    qr_session = _create(client, lecturer, course).get_json()['data']['session']
    url = f"/api/sessions/{qr_session['session_id']}/expire"

    assert client.post(url, headers=auth_headers(other_lecturer)).status_code == 403

    response = client.post(url, headers=auth_headers(lecturer))
    assert response.status_code == 200
    assert response.get_json()['data']['session']['state'] == 'expired'


def test_unknown_session(client, clock, lecturer):
    response = client.get('/api/sessions/does-not-exist', headers=auth_headers(lecturer))

    assert response.status_code == 404


def test_get_session_reports_effective_state(client, clock, lecturer, course):
    qr_session = _create(client, lecturer, course).get_json()['data']['session']
    clock.advance(minutes=20)

    response = client.get(f"/api/sessions/{qr_session['session_id']}", headers=auth_headers(lecturer))
    data = response.get_json()['data']['session']

    assert data['state'] == 'expired'
    assert data['time_remaining_seconds'] == 0


def test_active_sessions(client, clock, lecturer, student, course):
    _create(client, lecturer, course, duration_minutes=5)
    _create(client, lecturer, course, duration_minutes=30)
    clock.advance(minutes=10)

    response = client.get('/api/sessions/active', headers=auth_headers(student))
    data = response.get_json()['data']

    assert response.status_code == 200
    assert data['count'] == 1
    assert data['active_sessions'][0]['time_remaining_seconds'] == 1200


def test_list_sessions_paginates(client, clock, lecturer, course):
    for _ in range(3):
        _create(client, lecturer, course)

    response = client.get('/api/sessions?per_page=2&page=2', headers=auth_headers(lecturer))
    data = response.get_json()['data']

    assert len(data['sessions']) == 1
    assert data['pagination']['total'] == 3
    assert data['pagination']['total_pages'] == 2
    assert data['pagination']['has_prev'] is True
    assert data['pagination']['has_next'] is False


def test_list_sessions_rejects_unknown_state(client, clock, lecturer):
    response = client.get('/api/sessions?state=paused', headers=auth_headers(lecturer))

    assert response.status_code == 400


def test_session_stats(client, clock, lecturer, course):
    _create(client, lecturer, course, duration_minutes=5)
    _create(client, lecturer, course, duration_minutes=30)
    clock.advance(minutes=10)

    response = client.get('/api/sessions/stats', headers=auth_headers(lecturer))
    data = response.get_json()['data']

    assert data['active'] == 1
    assert data['expired'] == 1
    assert data['total'] == 2


def test_mark_attendance(client, clock, lecturer, student, course):
    body = {'student_id': student.id, 'course_id': course.id, 'date': '2026-03-02', 'status': 'absent'}

    first = client.post('/api/attendance/mark', json=body, headers=auth_headers(lecturer))
    assert first.status_code == 201
    assert first.get_json()['data']['attendance']['status'] == 'absent'

    body['status'] = 'EXCUSED'
    second = client.post('/api/attendance/mark', json=body, headers=auth_headers(lecturer))
    assert second.status_code == 200
    assert second.get_json()['data']['attendance']['status'] == 'excused'
    assert AttendanceRecord.query.count() == 1


def test_mark_attendance_rejects_bad_input(client, clock, lecturer, student, course):
    body = {'student_id': student.id, 'course_id': course.id, 'date': '2026-03-02', 'status': 'sleeping'}
    assert client.post('/api/attendance/mark', json=body, headers=auth_headers(lecturer)).status_code == 400

    body.update(status='present', date='02/03/2026')
    assert client.post('/api/attendance/mark', json=body, headers=auth_headers(lecturer)).status_code == 400

    body.update(date='2026-03-02', student_id=999)
    assert client.post('/api/attendance/mark', json=body, headers=auth_headers(lecturer)).status_code == 404


def test_course_summary(client, clock, lecturer, student, course):
    body = {'student_id': student.id, 'course_id': course.id, 'date': '2026-03-02', 'status': 'present'}
    client.post('/api/attendance/mark', json=body, headers=auth_headers(lecturer))

    response = client.get(
        f'/api/attendance/course/{course.id}/summary?start_date=2026-03-01&end_date=2026-03-31',
        headers=auth_headers(lecturer)
    )
    data = response.get_json()['data']

    assert response.status_code == 200
    assert data['course']['code'] == 'CS101'
    assert data['summary']['present'] == 1
    assert data['summary']['attendance_rate'] == 100.0


@pytest.mark.parametrize('value', ['--5', '²', '1.5', 'abc'])
def test_bad_integer_query_args(client, clock, lecturer, value):
    response = client.get(f'/api/sessions/active?course_id={value}', headers=auth_headers(lecturer))

    assert response.status_code == 400
    assert response.get_json()['error'] is True


def test_bad_integer_body_field(client, clock, lecturer, course):
    response = _create(client, lecturer, course, duration_minutes='--5')

    assert response.status_code == 400


def test_store_failure_returns_503(client, clock, lecturer, course, failing_commit):
    response = _create(client, lecturer, course)
    data = response.get_json()

    assert response.status_code == 503
    assert data['error'] is True
    assert data['status_code'] == 503
    assert failing_commit


def test_active_sessions_by_creator(client, clock, lecturer, admin, course):
    _create(client, lecturer, course)
    _create(client, admin, course)

    response = client.get(f'/api/sessions/active?created_by={admin.id}', headers=auth_headers(lecturer))
    data = response.get_json()['data']

    assert data['count'] == 1
    assert data['active_sessions'][0]['created_by'] == admin.id


def _mark(client, lecturer, student, course, day, status):
    body = {'student_id': student.id, 'course_id': course.id, 'date': day, 'status': status}
    return client.post('/api/attendance/mark', json=body, headers=auth_headers(lecturer))


def test_list_attendance(client, clock, lecturer, student, outsider, course):
    _mark(client, lecturer, student, course, '2026-03-02', 'present')
    _mark(client, lecturer, student, course, '2026-03-03', 'absent')
    _mark(client, lecturer, outsider, course, '2026-03-03', 'present')

    response = client.get('/api/attendance?status=present&per_page=1', headers=auth_headers(lecturer))
    data = response.get_json()['data']

    assert response.status_code == 200
    assert data['pagination']['total'] == 2
    assert data['pagination']['has_next'] is True
    assert data['attendance'][0]['date'] == '2026-03-03'

    response = client.get('/api/attendance', headers=auth_headers(student))
    assert response.get_json()['data']['pagination']['total'] == 2

    response = client.get('/api/attendance?status=sleeping', headers=auth_headers(lecturer))
    assert response.status_code == 400


def test_course_attendance(client, clock, lecturer, other_lecturer, student, course):
    _mark(client, lecturer, student, course, '2026-03-02', 'present')
    _mark(client, lecturer, student, course, '2026-03-03', 'late')

    response = client.get(f'/api/attendance/course/{course.id}?date=2026-03-03', headers=auth_headers(lecturer))
    data = response.get_json()['data']

    assert response.status_code == 200
    assert [r['status'] for r in data['attendance']] == ['late']
    assert data['attendance'][0]['student']['student_number'] == 'STU-A'

    response = client.get(f'/api/attendance/course/{course.id}', headers=auth_headers(other_lecturer))
    assert response.status_code == 403


def test_student_attendance_history(client, clock, lecturer, student, outsider, course):
    _mark(client, lecturer, student, course, '2026-03-02', 'present')
    _mark(client, lecturer, student, course, '2026-03-09', 'absent')

    response = client.get(
        f'/api/attendance/student/{student.id}?start_date=2026-03-01&end_date=2026-03-05',
        headers=auth_headers(student)
    )
    data = response.get_json()['data']

    assert response.status_code == 200
    assert data['summary']['total'] == 1
    assert data['summary']['attendance_rate'] == 100.0
    assert len(data['attendance']) == 1

    response = client.get(f'/api/attendance/student/{student.id}', headers=auth_headers(outsider))
    assert response.status_code == 403


def test_app_closes_broadcaster_at_exit(monkeypatch):
    import edutend

    registered = []
    monkeypatch.setattr(edutend.atexit, 'register', registered.append)

    app = create_app('testing')

    assert app.extensions['edutend.broadcaster'].close in registered
