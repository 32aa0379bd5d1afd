import io
import json
from datetime import timedelta

import pytest

from canteen.models import Account, StudentProfile
from conftest import login_staff, login_student


@pytest.fixture
def student_payload():
    return {
        "student_number": "2024100",
        "name": "Dewi",
        "email": "dewi@school.test",
        "address": "Jl. Kenanga 5",
        "phone": "0844444444",
        "password": "password123",
    }


@pytest.mark.auth
class TestStudentRegistration:
    """Public student sign-up."""

    def test_register_success(self, client, db_session, student_payload):
        response = client.post(
            '/api/auth/register/student',
            data=json.dumps(student_payload),
            content_type='application/json'
        )

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['status'] == 'success'
        assert data['data']['student_number'] == '2024100'

        account = db_session.get(Account, data['data']['account_id'])
        assert account.role == 'student'
        assert account.password_hash != 'password123'

    def test_register_with_photo(self, client, fake_s3, student_payload):
        form = dict(student_payload)
        form['photo'] = (io.BytesIO(b'fake image'), 'me.png')

        response = client.post(
            '/api/auth/register/student',
            data=form,
            content_type='multipart/form-data'
        )

        assert response.status_code == 201
        photo_url = response.get_json()['data']['photo_url']
        assert photo_url.startswith('https://canteen-test.s3.amazonaws.com/students/')
        assert fake_s3[0][1].endswith('_me.png')

    def test_register_rejects_non_image_photo(self, client, student_payload):
        form = dict(student_payload)
        form['photo'] = (io.BytesIO(b'MZ'), 'virus.exe')

        response = client.post(
            '/api/auth/register/student',
            data=form,
            content_type='multipart/form-data'
        )

        assert response.status_code == 400

    @pytest.mark.parametrize('field', ['student_number', 'email', 'password', 'name'])
    def test_register_missing_field(self, client, student_payload, field):
        student_payload.pop(field)
        response = client.post(
            '/api/auth/register/student',
            data=json.dumps(student_payload),
            content_type='application/json'
        )

        assert response.status_code == 400
        assert response.get_json()['status'] == 'error'

    @pytest.mark.parametrize('field, value', [('email', 12345), ('password', 12345678), ('name', ['Dewi'])])
    def test_register_non_text_field(self, client, db_session, student_payload, field, value):
        student_payload[field] = value
        response = client.post(
            '/api/auth/register/student',
            data=json.dumps(student_payload),
            content_type='application/json'
        )

        assert response.status_code == 400
        assert field in response.get_json()['message']
        assert db_session.query(StudentProfile).count() == 0

    def test_register_duplicate_student_number(self, client, sample_student, student_payload):
        student_payload['student_number'] = sample_student.student_number
        response = client.post(
            '/api/auth/register/student',
            data=json.dumps(student_payload),
            content_type='application/json'
        )

        assert response.status_code == 409

    def test_register_duplicate_email(self, client, sample_student, student_payload):
        student_payload['email'] = 'andi@school.test'
        response = client.post(
            '/api/auth/register/student',
            data=json.dumps(student_payload),
            content_type='application/json'
        )

        assert response.status_code == 409


@pytest.mark.auth
class TestStaffRegistration:

    def _payload(self, stall_id):
        return {
            "name": "Joko",
            "email": "joko@canteen.test",
            "address": "Jl. Melati 7",
            "phone": "0855555555",
            "stall_id": stall_id,
            "password": "joko1234",
        }

    def test_admin_registers_staff(self, client, admin_headers, sample_stall):
        response = client.post(
            '/api/auth/register/staff',
            json=self._payload(sample_stall.id),
            headers=admin_headers
        )

        assert response.status_code == 201
        assert response.get_json()['data']['stall_id'] == sample_stall.id

        login = login_staff(client, 'joko@canteen.test', 'joko1234')
        assert login.status_code == 200
        assert login.get_json()['user']['stall_id'] == sample_stall.id

    def test_requires_admin(self, client, staff_headers, sample_stall):
        response = client.post(
            '/api/auth/register/staff',
            json=self._payload(sample_stall.id),
            headers=staff_headers
        )

        assert response.status_code == 403

    def test_requires_token(self, client, sample_stall):
        response = client.post('/api/auth/register/staff', json=self._payload(sample_stall.id))

        assert response.status_code == 401

    def test_non_text_email(self, client, admin_headers, sample_stall):
        payload = self._payload(sample_stall.id)
        payload['email'] = 12345

        response = client.post('/api/auth/register/staff', json=payload, headers=admin_headers)

        assert response.status_code == 400

    def test_unknown_stall(self, client, admin_headers):
        response = client.post(
            '/api/auth/register/staff',
            json=self._payload(999),
            headers=admin_headers
        )

        assert response.status_code == 404


@pytest.mark.auth
class TestLogin:

    def test_student_login(self, client, sample_student):
        response = login_student(client, '2024001')

        assert response.status_code == 200
        data = response.get_json()
        assert data['message'] == 'Login successful'
        assert data['user']['role'] == 'student'
        assert data['token']

    def test_student_login_wrong_password(self, client, sample_student):
        response = login_student(client, '2024001', 'wrong-password')

        assert response.status_code == 401

    def test_student_login_unknown_number(self, client):
        response = login_student(client, '0000000')

        assert response.status_code == 401

    def test_student_login_missing_fields(self, client):
        response = client.post('/api/auth/login/student', json={'student_number': '2024001'})

        assert response.status_code == 400

    def test_student_login_non_text_password(self, client, sample_student):
        response = client.post(
            '/api/auth/login/student',
            json={'student_number': '2024001', 'password': 12345678},
        )

        assert response.status_code == 400

    def test_staff_login(self, client, sample_staff):
        response = login_staff(client, 'budi@canteen.test', 'staffpass')

        assert response.status_code == 200
        assert response.get_json()['user']['role'] == 'staff'

    def test_admin_login(self, client, admin_account):
        response = login_staff(client, 'admin@canteen.test', 'adminpass')

        assert response.status_code == 200
        assert response.get_json()['user']['role'] == 'admin'

    def test_student_cannot_use_staff_login(self, client, sample_student):
        response = login_staff(client, 'andi@school.test', 'studentpass')

        assert response.status_code == 401

    def test_deactivated_student_cannot_login(self, client, db_session, sample_student):
        sample_student.account.deactivate()
        db_session.commit()

        response = login_student(client, '2024001')

        assert response.status_code == 401

    def test_remember_me_extends_lifetime(self, client, app, sample_student):
        short = login_student(client, '2024001').get_json()['token']
        long = client.post(
            '/api/auth/login/student',
            json={'student_number': '2024001', 'password': 'studentpass', 'remember_me': True},
        ).get_json()['token']

        issuer = app.extensions['token_issuer']
        short_claims = issuer.decode(short)
        long_claims = issuer.decode(long)

        assert short_claims['exp'] - short_claims['iat'] == int(timedelta(hours=24).total_seconds())
        assert long_claims['exp'] - long_claims['iat'] == int(timedelta(days=30).total_seconds())
        assert long_claims['student_number'] == '2024001'


@pytest.mark.auth
class TestAccessGuard:

    def test_me_student(self, client, student_headers):
        response = client.get('/api/auth/me', headers=student_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data['role'] == 'student'
        assert data['profile']['student_number'] == '2024001'

    def test_me_staff(self, client, staff_headers, sample_stall):
        response = client.get('/api/auth/me', headers=staff_headers)

        assert response.status_code == 200
        assert response.get_json()['profile']['stall_id'] == sample_stall.id

    def test_missing_header(self, client):
        response = client.get('/api/auth/me')

        assert response.status_code == 401

    def test_malformed_header(self, client):
        response = client.get('/api/auth/me', headers={'Authorization': 'Token abc'})

        assert response.status_code == 401

    def test_bad_signature(self, client, sample_student):
        response = client.get('/api/auth/me', headers={'Authorization': 'Bearer not.a.jwt'})

        assert response.status_code == 401

    def test_expired_token(self, client, app, sample_student):
        from canteen.services.identity import TokenIssuer, student_claims

        expired = TokenIssuer(
            app.config['JWT_SECRET_KEY'],
            expires=timedelta(seconds=-10),
            remember_expires=timedelta(seconds=-10),
        ).issue(student_claims(sample_student.account, sample_student))

        response = client.get('/api/auth/me', headers={'Authorization': f'Bearer {expired}'})

        assert response.status_code == 401
        assert 'expired' in response.get_json()['message']

    def test_token_of_deactivated_account_rejected(self, client, db_session, sample_student, student_headers):
        account = db_session.get(StudentProfile, sample_student.id).account
        account.deactivate()
        db_session.commit()

        response = client.get('/api/auth/me', headers=student_headers)

        assert response.status_code == 401

    def test_wrong_role_forbidden(self, client, student_headers):
        response = client.get('/api/stalls', headers=student_headers)

        assert response.status_code == 403


@pytest.mark.auth
class TestSeedAdmin:

    def test_seed_creates_then_updates(self, client, db_session):
        from seed_admin import seed_admin

        account, action = seed_admin('root@canteen.test', 'first-pass', rounds=4)
        assert action == 'created'
        assert account.role == 'admin'

        account, action = seed_admin('root@canteen.test', 'second-pass', rounds=4)
        assert action == 'updated'

        assert login_staff(client, 'root@canteen.test', 'first-pass').status_code == 401
        assert login_staff(client, 'root@canteen.test', 'second-pass').status_code == 200
