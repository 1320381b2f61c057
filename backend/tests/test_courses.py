from conftest import unique


def _create_course(client, owner, **extra):
    body = {'title': unique('Course'), 'creator_id': owner['uuid']}
    body.update(extra)
    return client.post('/courses', json=body, headers=owner['headers'])


def test_create_and_read_course(client, teacher, course):
    r = client.get(f"/courses/{course['uuid']}", headers=teacher['headers'])
    assert r.status_code == 200
    body = r.json()
    assert body['creator_id'] == teacher['uuid']
    assert body['chapters'] == [] and body['comments'] == [] and body['students'] == []
    assert body['published'] is False


def test_duplicate_title_conflicts(client, teacher, course):
    r = client.post('/courses', json={'title': course['title'], 'creator_id': teacher['uuid']}, headers=teacher['headers'])
    assert r.status_code == 409


def test_students_cannot_create_courses(client, student):
    r = _create_course(client, student)
    assert r.status_code == 403


def test_cannot_create_course_for_someone_else(client, teacher, other_teacher):
    r = client.post('/courses', json={'title': unique('Course'), 'creator_id': other_teacher['uuid']}, headers=teacher['headers'])
    assert r.status_code == 403


def test_unknown_student_on_create_is_not_found(client, teacher):
    r = _create_course(client, teacher, students=['no-such-user'])
    assert r.status_code == 404


def test_update_to_existing_title_is_allowed(client, teacher, course):
    # titles are only checked for uniqueness at creation
    other = _create_course(client, teacher).json()
    r = client.put(f"/courses/{other['uuid']}", json={'title': course['title']}, headers=teacher['headers'])
    assert r.status_code == 200
    assert r.json()['title'] == course['title']


def test_only_creator_updates(client, other_teacher, course):
    r = client.put(f"/courses/{course['uuid']}", json={'published': True}, headers=other_teacher['headers'])
    assert r.status_code == 403


def test_filters_by_tag_creator_and_student(client, teacher, student):
    tag = unique('tag')
    created = _create_course(client, teacher, tags=[tag], students=[student['uuid']]).json()
    by_tag = client.get(f'/courses/tag/{tag}', headers=teacher['headers']).json()
    assert [c['uuid'] for c in by_tag] == [created['uuid']]
    by_creator = client.get(f"/courses/creator/{teacher['uuid']}", headers=teacher['headers']).json()
    assert created['uuid'] in {c['uuid'] for c in by_creator}
    by_student = client.get(f"/courses/student/{student['uuid']}", headers=student['headers']).json()
    assert [c['uuid'] for c in by_student] == [created['uuid']]


def test_student_filter_rejects_teachers_and_unknown_users(client, teacher):
    assert client.get(f"/courses/student/{teacher['uuid']}", headers=teacher['headers']).status_code == 403
    assert client.get('/courses/student/missing', headers=teacher['headers']).status_code == 404
    assert client.get('/courses/creator/missing', headers=teacher['headers']).status_code == 404


def test_find_all_is_stable_without_writes(client, teacher, course):
    first = client.get('/courses', headers=teacher['headers']).json()
    second = client.get('/courses', headers=teacher['headers']).json()
    assert {c['uuid'] for c in first} == {c['uuid'] for c in second}
    assert course['uuid'] in {c['uuid'] for c in first}


def test_enroll_and_unenroll_self(client, student, course):
    # not yet a member
    assert client.get(f"/courses/{course['uuid']}", headers=student['headers']).status_code == 403
    r = client.put(f"/courses/{course['uuid']}/enroll", json={'students': [student['uuid']]}, headers=student['headers'])
    assert r.status_code == 200
    assert r.json()['students'] == [student['uuid']]
    assert client.get(f"/courses/{course['uuid']}", headers=student['headers']).status_code == 200
    again = client.put(f"/courses/{course['uuid']}/enroll", json={'students': [student['uuid']]}, headers=student['headers'])
    assert again.status_code == 409
    out = client.request('DELETE', f"/courses/{course['uuid']}/unenroll", json={'students': [student['uuid']]}, headers=student['headers'])
    assert out.status_code == 200
    assert out.json()['students'] == []


def test_teachers_cannot_be_enrolled(client, teacher, other_teacher, course):
    r = client.put(f"/courses/{course['uuid']}/enroll", json={'students': [other_teacher['uuid']]}, headers=teacher['headers'])
    assert r.status_code == 403


def test_student_cannot_enroll_others(client, student, course):
    r = client.put(f"/courses/{course['uuid']}/enroll", json={'students': ['someone-else']}, headers=student['headers'])
    assert r.status_code == 403


def test_delete_course_requires_creator(client, teacher, other_teacher, course):
    assert client.delete(f"/courses/{course['uuid']}", headers=other_teacher['headers']).status_code == 403
    assert client.delete(f"/courses/{course['uuid']}", headers=teacher['headers']).status_code == 200
    assert client.get(f"/courses/{course['uuid']}", headers=teacher['headers']).status_code == 404
