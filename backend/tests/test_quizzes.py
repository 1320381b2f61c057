from conftest import quiz_payload, unique


def _create_quiz(client, teacher, chapter, **kw):
    r = client.post('/quizzes', json=quiz_payload(chapter['uuid'], teacher['uuid'], **kw), headers=teacher['headers'])
    assert r.status_code == 201, r.text
    return r.json()


def test_create_quiz_links_chapter(client, teacher, chapter):
    quiz = _create_quiz(client, teacher, chapter)
    fetched = client.get(f"/chapters/{chapter['uuid']}", headers=teacher['headers']).json()
    assert fetched['quiz_id'] == quiz['uuid']
    via_chapter = client.get(f"/chapters/{chapter['uuid']}/quiz", headers=teacher['headers']).json()
    assert via_chapter['uuid'] == quiz['uuid']
    listed = client.get(f"/quizzes/chapter/{chapter['uuid']}", headers=teacher['headers']).json()
    assert [q['uuid'] for q in listed] == [quiz['uuid']]


def test_only_course_owner_creates_quizzes(client, other_teacher, chapter):
    r = client.post('/quizzes', json=quiz_payload(chapter['uuid'], other_teacher['uuid']), headers=other_teacher['headers'])
    assert r.status_code == 403


def test_students_cannot_create_quizzes(client, student, chapter):
    r = client.post('/quizzes', json=quiz_payload(chapter['uuid'], student['uuid']), headers=student['headers'])
    assert r.status_code == 403


def test_duplicate_quiz_title_in_chapter_conflicts(client, teacher, chapter):
    quiz = _create_quiz(client, teacher, chapter)
    payload = quiz_payload(chapter['uuid'], teacher['uuid'])
    payload['title'] = quiz['title']
    r = client.post('/quizzes', json=payload, headers=teacher['headers'])
    assert r.status_code == 409


def test_question_validation(client, teacher, chapter):
    base = quiz_payload(chapter['uuid'], teacher['uuid'])
    empty = dict(base, questions=[])
    assert client.post('/quizzes', json=empty, headers=teacher['headers']).status_code == 400
    one_option = dict(base, questions=[{'text': 'Q', 'options': ['only'], 'correct_option': 0}])
    assert client.post('/quizzes', json=one_option, headers=teacher['headers']).status_code == 400
    out_of_range = dict(base, questions=[{'text': 'Q', 'options': ['a', 'b'], 'correct_option': 2}])
    assert client.post('/quizzes', json=out_of_range, headers=teacher['headers']).status_code == 400
    negative = dict(base, questions=[{'text': 'Q', 'options': ['a', 'b'], 'correct_option': -1}])
    assert client.post('/quizzes', json=negative, headers=teacher['headers']).status_code == 400


def test_unknown_chapter_is_not_found(client, teacher):
    r = client.post('/quizzes', json=quiz_payload('missing', teacher['uuid']), headers=teacher['headers'])
    assert r.status_code == 404


def test_submit_scores_by_index(client, teacher, student, chapter):
    quiz = _create_quiz(client, teacher, chapter, correct=(0, 1, 0))
    body = {'quiz_id': quiz['uuid'], 'user_id': student['uuid'], 'answers': [0, 1, 1]}
    r = client.post(f"/quizzes/{quiz['uuid']}/answers", json=body, headers=student['headers'])
    assert r.status_code == 201
    assert r.json()['score'] == 2

    body['answers'] = [0, 1, 0]
    client.post(f"/quizzes/{quiz['uuid']}/answers", json=body, headers=student['headers'])
    latest = client.get(f"/quizzes/{quiz['uuid']}/answers/{student['uuid']}", headers=student['headers'])
    assert latest.json()['score'] == 3
    all_answers = client.get(f"/quizzes/{quiz['uuid']}/answers", headers=teacher['headers']).json()
    assert [a['score'] for a in all_answers] == [2, 3]


def test_submit_rejects_wrong_answer_count(client, teacher, student, chapter):
    quiz = _create_quiz(client, teacher, chapter)
    body = {'quiz_id': quiz['uuid'], 'user_id': student['uuid'], 'answers': [0]}
    r = client.post(f"/quizzes/{quiz['uuid']}/answers", json=body, headers=student['headers'])
    assert r.status_code == 400


def test_submit_checks_path_and_user(client, teacher, student, chapter):
    quiz = _create_quiz(client, teacher, chapter)
    mismatched = {'quiz_id': 'other', 'user_id': student['uuid'], 'answers': [0, 0, 0]}
    assert client.post(f"/quizzes/{quiz['uuid']}/answers", json=mismatched, headers=student['headers']).status_code == 400
    for_someone_else = {'quiz_id': quiz['uuid'], 'user_id': teacher['uuid'], 'answers': [0, 0, 0]}
    assert client.post(f"/quizzes/{quiz['uuid']}/answers", json=for_someone_else, headers=student['headers']).status_code == 403


def test_partial_update_merges_questions(client, teacher, chapter):
    quiz = _create_quiz(client, teacher, chapter, correct=(0, 1))
    r = client.put(f"/quizzes/{quiz['uuid']}", json={'questions': [{'correct_option': 2}, {'text': 'Renamed'}]}, headers=teacher['headers'])
    assert r.status_code == 200
    questions = r.json()['questions']
    assert questions[0]['correct_option'] == 2
    assert questions[0]['options'] == ['A', 'B', 'C']
    assert questions[1]['text'] == 'Renamed'
    assert questions[1]['correct_option'] == 1


def test_update_validates_present_fields(client, teacher, chapter):
    quiz = _create_quiz(client, teacher, chapter)
    bad = client.put(f"/quizzes/{quiz['uuid']}", json={'questions': [{'options': ['x']}]}, headers=teacher['headers'])
    assert bad.status_code == 400
    out_of_range = client.put(f"/quizzes/{quiz['uuid']}", json={'questions': [{'options': ['x', 'y'], 'correct_option': 5}]}, headers=teacher['headers'])
    assert out_of_range.status_code == 400


def test_update_rejects_merged_question_out_of_range(client, teacher, chapter):
    quiz = _create_quiz(client, teacher, chapter)
    r = client.put(f"/quizzes/{quiz['uuid']}", json={'questions': [{'correct_option': 5}]}, headers=teacher['headers'])
    assert r.status_code == 400
    stored = client.get(f"/quizzes/{quiz['uuid']}", headers=teacher['headers']).json()
    assert stored['questions'][0]['correct_option'] == quiz['questions'][0]['correct_option']


def test_update_cannot_move_quiz_into_foreign_chapter(client, teacher, other_teacher, chapter):
    quiz = _create_quiz(client, teacher, chapter)
    course = client.post('/courses', json={'title': unique('Foreign'), 'creator_id': other_teacher['uuid']}, headers=other_teacher['headers']).json()
    foreign = client.post('/chapters', json={'title': unique('Chapter'), 'course_id': course['uuid']}, headers=other_teacher['headers']).json()
    r = client.put(f"/quizzes/{quiz['uuid']}", json={'chapter_id': foreign['uuid']}, headers=teacher['headers'])
    assert r.status_code == 403
    assert client.get(f"/chapters/{foreign['uuid']}", headers=teacher['headers']).json()['quiz_id'] is None


def test_update_title_conflict_in_chapter(client, teacher, chapter):
    first = _create_quiz(client, teacher, chapter)
    second = _create_quiz(client, teacher, chapter)
    r = client.put(f"/quizzes/{second['uuid']}", json={'title': first['title'], 'chapter_id': chapter['uuid']}, headers=teacher['headers'])
    assert r.status_code == 409


def test_delete_quiz_clears_chapter_pointer(client, teacher, chapter):
    quiz = _create_quiz(client, teacher, chapter)
    r = client.delete(f"/quizzes/{quiz['uuid']}", headers=teacher['headers'])
    assert r.status_code == 200
    fetched = client.get(f"/chapters/{chapter['uuid']}", headers=teacher['headers']).json()
    assert fetched['quiz_id'] is None
    assert client.get(f"/quizzes/{quiz['uuid']}", headers=teacher['headers']).status_code == 404


def test_delete_chapter_removes_its_quiz(client, teacher, chapter):
    quiz = _create_quiz(client, teacher, chapter)
    client.delete(f"/chapters/{chapter['uuid']}", headers=teacher['headers'])
    assert client.get(f"/quizzes/{quiz['uuid']}", headers=teacher['headers']).status_code == 404


def test_course_stats_report_latest_scores(client, teacher, student, course, chapter):
    quiz = _create_quiz(client, teacher, chapter, correct=(0, 1, 0))
    client.put(f"/courses/{course['uuid']}/enroll", json={'students': [student['uuid']]}, headers=student['headers'])
    body = {'quiz_id': quiz['uuid'], 'user_id': student['uuid'], 'answers': [1, 1, 0]}
    client.post(f"/quizzes/{quiz['uuid']}/answers", json=body, headers=student['headers'])
    stats = client.get(f"/courses/{course['uuid']}/stats", headers=teacher['headers']).json()
    assert len(stats) == 1
    row = stats[0]
    assert row['user_id'] == student['uuid']
    assert row['completed_quizzes'] == 1
    assert row['quizzes'] == [{'quiz_id': quiz['uuid'], 'title': quiz['title'], 'score': 2, 'total': 3}]
