# HTTP Tests for the Health-Lock service
import base64
import json
import os
import re
import threading
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from urllib.parse import urlparse, parse_qs

import jwt
from sqlalchemy.exc import OperationalError

from app import create_app
from config import DevelopmentConfig, TestingConfig
from models import db, Patient, AccessLog, ProfileAccessRequest, utcnow
from notification_service import Notifier

PDF_BYTES = b'%PDF-1.4\n% test report\n%%EOF\n'
PDF_DATA_URL = 'data:application/pdf;base64,' + base64.b64encode(PDF_BYTES).decode()


def set_cookie_header(response):
    headers = [h for h in response.headers.getlist('Set-Cookie') if h.startswith('auth_token=')]
    return headers[0] if headers else None


def cookie_value(response):
    return re.match(r'auth_token=([^;]*)', set_cookie_header(response)).group(1)


def token_from_url(access_url):
    return parse_qs(urlparse(access_url).query)['token'][0]


class HealthLockAPITestCase(unittest.TestCase):
    """Base fixture: fresh app and database per test"""

    def setUp(self):
        self.app = create_app('testing')
        self.ctx = self.app.app_context()
        self.ctx.push()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()

    def signup(self, role, email, password='password123', client=None, **extra):
        client = client or self.app.test_client()
        body = {'role': role, 'email': email, 'password': password, 'name': extra.pop('name', email.split('@')[0])}
        body.update(extra)
        response = client.post('/api/auth/signup', json=body)
        return client, response

    def patient(self, email='pat@example.com'):
        client, response = self.signup('patient', email, phone='555-0101')
        self.assertEqual(response.status_code, 201, response.data)
        return client, response.get_json()['data']['user']['id']

    def doctor(self, email='doc@example.com'):
        client, response = self.signup('doctor', email, specialization='Cardiology')
        self.assertEqual(response.status_code, 201, response.data)
        return client, response.get_json()['data']['user']['id']

    def upload(self, client, **extra):
        body = {'medicalData': {'file': PDF_DATA_URL, 'fileType': 'application/pdf', 'fileName': 'cbc.pdf'}}
        body.update(extra)
        return client.post('/api/patient/records', json=body)

    def uploaded_record(self, client):
        response = self.upload(client)
        self.assertEqual(response.status_code, 201, response.data)
        data = response.get_json()['data']
        return data['recordId'], token_from_url(data['accessUrl'])

    def assert_error(self, response, status_code, code):
        self.assertEqual(response.status_code, status_code, response.data)
        body = response.get_json()
        self.assertFalse(body['success'])
        self.assertEqual(body['error']['code'], code)
        self.assertTrue(body['error']['message'])

    def advance_token_clock(self, **kwargs):
        later = datetime.now(timezone.utc) + timedelta(**kwargs)
        self.app.extensions['token_service'].clock = lambda: later


class AuthAPITestCase(HealthLockAPITestCase):

    def test_health_check(self):
        response = self.app.test_client().get('/api/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.data), {'success': True, 'data': {'status': 'ok'}})

    def test_signup_sets_session_cookie(self):
        client, response = self.signup('patient', ' Pat@Example.com ')
        self.assertEqual(response.status_code, 201)
        data = response.get_json()['data']
        self.assertEqual(data['role'], 'patient')
        self.assertEqual(data['redirectUrl'], '/patient')
        self.assertEqual(data['user']['email'], 'pat@example.com')

        header = set_cookie_header(response)
        self.assertIn('HttpOnly', header)
        self.assertIn('SameSite=Lax', header)
        self.assertNotIn('Max-Age', header)

        session = client.get('/api/auth/session').get_json()['data']
        self.assertEqual(session, {'userId': str(data['user']['id']), 'role': 'patient'})

    def test_duplicate_email_within_role_conflicts(self):
        self.signup('patient', 'pat@example.com')
        _, response = self.signup('patient', 'PAT@example.com')
        self.assert_error(response, 409, 'ACCOUNT_EXISTS')

    def test_same_email_allowed_for_other_role(self):
        self.signup('patient', 'shared@example.com')
        _, response = self.signup('doctor', 'shared@example.com')
        self.assertEqual(response.status_code, 201)

    def test_signup_validation(self):
        _, response = self.signup('nurse', 'n@example.com')
        self.assert_error(response, 400, 'INVALID_ROLE')
        _, response = self.signup('patient', '   ')
        self.assert_error(response, 400, 'VALIDATION_ERROR')
        _, response = self.signup('doctor', 'd@example.com', name='')
        self.assert_error(response, 400, 'VALIDATION_ERROR')

    def test_non_object_and_mistyped_bodies_are_rejected(self):
        client = self.app.test_client()
        self.assert_error(client.post('/api/auth/signup', json=['patient', 'a@example.com']), 400, 'INVALID_ROLE')
        self.assert_error(client.post('/api/auth/signin', json='patient'), 400, 'INVALID_ROLE')
        self.assert_error(client.post('/api/auth/signup', data='not json',
                                      content_type='application/json'), 400, 'INVALID_ROLE')

        _, response = self.signup(['patient'], 'a@example.com')
        self.assert_error(response, 400, 'INVALID_ROLE')
        _, response = self.signup('patient', 'a@example.com', password=12345678)
        self.assert_error(response, 400, 'VALIDATION_ERROR')
        _, response = self.signup('doctor', 'd@example.com', name={'first': 'Greg'})
        self.assert_error(response, 400, 'VALIDATION_ERROR')

        client, _ = self.patient()
        response = client.post('/api/auth/signin', json={
            'role': 'patient', 'email': 'pat@example.com', 'password': ['password123']
        })
        self.assert_error(response, 400, 'VALIDATION_ERROR')
        response = client.put('/api/auth/me', json={'phone': 5550101, 'currentPassword': 1, 'newPassword': 'longenough1'})
        self.assert_error(response, 400, 'INVALID_CURRENT_PASSWORD')

    def test_missing_signing_key_stops_startup(self):
        self.assertEqual(DevelopmentConfig.JWT_SECRET_KEY, os.getenv('JWT_SECRET'))
        with patch.object(TestingConfig, 'JWT_SECRET_KEY', None):
            with self.assertRaises(RuntimeError):
                create_app('testing')

    def test_signin_with_wrong_password(self):
        self.signup('patient', 'pat@example.com')
        response = self.app.test_client().post('/api/auth/signin', json={
            'role': 'patient', 'email': 'pat@example.com', 'password': 'wrong-password'
        })
        self.assert_error(response, 401, 'INVALID_CREDENTIALS')

        response = self.app.test_client().post('/api/auth/signin', json={
            'role': 'patient', 'email': 'nobody@example.com', 'password': 'password123'
        })
        self.assert_error(response, 401, 'INVALID_CREDENTIALS')

    def test_remember_me_changes_only_cookie_retention(self):
        self.signup('doctor', 'doc@example.com')
        client = self.app.test_client()
        plain = client.post('/api/auth/signin', json={
            'role': 'doctor', 'email': 'doc@example.com', 'password': 'password123'
        })
        remembered = client.post('/api/auth/signin', json={
            'role': 'doctor', 'email': 'doc@example.com', 'password': 'password123', 'rememberMe': True
        })
        self.assertEqual(plain.status_code, 200)
        self.assertNotIn('Max-Age', set_cookie_header(plain))
        self.assertIn('Max-Age=2592000', set_cookie_header(remembered))

        thirty_days = int(timedelta(days=30).total_seconds())
        secret = self.app.config['JWT_SECRET_KEY']
        for response in (plain, remembered):
            claims = jwt.decode(cookie_value(response), secret, algorithms=['HS256'])
            self.assertEqual(claims['exp'] - claims['iat'], thirty_days)
            self.assertEqual(claims['scope'], 'auth')
            self.assertEqual(claims['role'], 'doctor')

    def test_invalid_session_is_anonymous(self):
        client = self.app.test_client()
        client.set_cookie('auth_token', 'not-a-jwt')
        self.assert_error(client.get('/api/auth/session'), 401, 'AUTH_REQUIRED')
        self.assert_error(client.get('/api/auth/me'), 401, 'AUTH_REQUIRED')
        self.assertEqual(client.get('/api/health').status_code, 200)

    def test_logout_clears_cookie(self):
        client, _ = self.patient()
        response = client.post('/api/auth/logout')
        self.assertEqual(response.status_code, 200)
        self.assertIn('auth_token=;', set_cookie_header(response))
        self.assert_error(client.get('/api/auth/session'), 401, 'AUTH_REQUIRED')

    def test_profile_read_and_update(self):
        client, patient_id = self.patient()
        profile = client.get('/api/auth/me').get_json()['data']
        self.assertEqual(profile['id'], patient_id)
        self.assertEqual(profile['phone'], '555-0101')
        self.assertNotIn('specialization', profile)

        response = client.put('/api/auth/me', json={'name': 'Patricia', 'email': 'NEW@example.com', 'phone': '555-0199'})
        updated = response.get_json()['data']
        self.assertEqual(updated['name'], 'Patricia')
        self.assertEqual(updated['email'], 'new@example.com')
        self.assertEqual(updated['phone'], '555-0199')

    def test_profile_email_conflict(self):
        self.signup('patient', 'taken@example.com')
        client, _ = self.patient()
        self.assert_error(client.put('/api/auth/me', json={'email': 'taken@example.com'}), 409, 'ACCOUNT_EXISTS')

    def test_password_change(self):
        client, _ = self.patient()
        response = client.put('/api/auth/me', json={'currentPassword': 'nope', 'newPassword': 'longenough1'})
        self.assert_error(response, 400, 'INVALID_CURRENT_PASSWORD')
        response = client.put('/api/auth/me', json={'currentPassword': 'password123', 'newPassword': 'short'})
        self.assert_error(response, 400, 'WEAK_PASSWORD')

        response = client.put('/api/auth/me', json={'currentPassword': 'password123', 'newPassword': 'longenough1'})
        self.assertEqual(response.status_code, 200)
        response = self.app.test_client().post('/api/auth/signin', json={
            'role': 'patient', 'email': 'pat@example.com', 'password': 'longenough1'
        })
        self.assertEqual(response.status_code, 200)

    def test_unknown_route_uses_envelope(self):
        self.assert_error(self.app.test_client().get('/api/nothing-here'), 404, 'NOT_FOUND')


class RecordAPITestCase(HealthLockAPITestCase):

    def test_upload_returns_access_link(self):
        client, _ = self.patient()
        response = self.upload(client)
        self.assertEqual(response.status_code, 201)
        data = response.get_json()['data']

        parsed = urlparse(data['accessUrl'])
        self.assertEqual(f'{parsed.scheme}://{parsed.netloc}{parsed.path}', 'http://frontend.test/doctor')
        self.assertEqual(parse_qs(parsed.query)['id'], [str(data['recordId'])])
        self.assertTrue(data['qrCodeDataUrl'].startswith('data:image/png;base64,'))
        self.assertEqual(data['tokenExpiresIn'], '10m')

    def test_upload_validation(self):
        client, _ = self.patient()
        self.assert_error(client.post('/api/patient/records', json={}), 400, 'INVALID_UPLOAD_PAYLOAD')

        response = client.post('/api/patient/records', json={'medicalData': {
            'file': 'data:image/png;base64,AAAA', 'fileType': 'image/png'
        }})
        self.assert_error(response, 400, 'INVALID_FILE_TYPE')

        response = client.post('/api/patient/records', json={'medicalData': {
            'file': 'data:application/pdf;base64,@@not-base64@@', 'fileType': 'application/pdf'
        }})
        self.assert_error(response, 400, 'INVALID_UPLOAD_PAYLOAD')

        self.app.config['MAX_PDF_BYTES'] = 8
        self.assert_error(self.upload(client), 400, 'FILE_TOO_LARGE')

    def test_body_over_request_limit_is_file_too_large(self):
        client, _ = self.patient()
        self.app.config['MAX_CONTENT_LENGTH'] = 64
        self.assert_error(self.upload(client), 400, 'FILE_TOO_LARGE')
        self.assertEqual(client.get('/api/patient/records').get_json()['data'], [])

    def test_mistyped_upload_fields_are_client_errors(self):
        client, _ = self.patient()
        response = self.upload(client, doctorEmail=12345)
        self.assertEqual(response.status_code, 201)
        response = client.post('/api/patient/records', json=[{'medicalData': {}}])
        self.assert_error(response, 400, 'INVALID_UPLOAD_PAYLOAD')

    def test_upload_requires_patient_session(self):
        self.assert_error(self.upload(self.app.test_client()), 401, 'AUTH_REQUIRED')
        doctor_client, _ = self.doctor()
        self.assert_error(self.upload(doctor_client), 403, 'FORBIDDEN')

    def test_list_records_metadata_only(self):
        client, _ = self.patient()
        first_id, _ = self.uploaded_record(client)
        second_id, _ = self.uploaded_record(client)
        other_client, _ = self.patient('other@example.com')
        self.uploaded_record(other_client)

        records = client.get('/api/patient/records').get_json()['data']
        self.assertEqual({r['id'] for r in records}, {first_id, second_id})
        for record in records:
            self.assertNotIn('file', record)
            self.assertEqual(record['fileName'], 'cbc.pdf')
            self.assertIn('token=', record['accessUrl'])

    def test_scan_within_window_then_after_expiry(self):
        patient_client, _ = self.patient()
        record_id, token = self.uploaded_record(patient_client)
        doctor_client, doctor_id = self.doctor()

        response = doctor_client.get(f'/api/records/{record_id}?token={token}',
                                     headers={'User-Agent': 'scanner/1.0', 'X-Forwarded-For': '203.0.113.9'})
        self.assertEqual(response.status_code, 200, response.data)
        data = response.get_json()['data']
        self.assertEqual(data['recordId'], record_id)
        self.assertEqual(data['medicalData']['fileName'], 'cbc.pdf')
        self.assertEqual(data['medicalData']['file'], PDF_DATA_URL)

        logs = patient_client.get('/api/logs/me').get_json()['data']
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0]['id'], data['accessedLogId'])
        self.assertEqual(logs[0]['doctor']['id'], doctor_id)
        self.assertEqual(logs[0]['ip'], '203.0.113.9')
        self.assertEqual(logs[0]['userAgent'], 'scanner/1.0')
        self.assertEqual(logs[0]['meta'], {'via': 'qr'})

        self.advance_token_clock(minutes=11)
        response = doctor_client.get(f'/api/records/{record_id}?token={token}')
        self.assert_error(response, 401, 'TOKEN_EXPIRED')
        self.assertEqual(AccessLog.query.count(), 1)

    def test_each_view_logs_once_and_doctor_only_with_session(self):
        patient_client, _ = self.patient()
        record_id, token = self.uploaded_record(patient_client)
        doctor_client, doctor_id = self.doctor()

        anonymous = self.app.test_client().get(f'/api/records/{record_id}?token={token}')
        self.assertEqual(anonymous.status_code, 200)
        as_doctor = doctor_client.get(f'/api/records/{record_id}?token={token}')
        self.assertEqual(as_doctor.status_code, 200)
        # A patient session carries no doctor context
        as_patient = patient_client.get(f'/api/records/{record_id}?token={token}')
        self.assertEqual(as_patient.status_code, 200)

        logs = patient_client.get('/api/logs/me').get_json()['data']
        self.assertEqual(len(logs), 3)
        doctors = sorted([log['doctor']['id'] if log['doctor'] else 0 for log in logs])
        self.assertEqual(doctors, [0, 0, doctor_id])

        doctor_logs = doctor_client.get('/api/logs/doctor').get_json()['data']
        self.assertEqual(len(doctor_logs), 1)
        self.assertEqual(doctor_logs[0]['recordId'], record_id)

    def test_token_failures(self):
        patient_client, _ = self.patient()
        first_id, first_token = self.uploaded_record(patient_client)
        second_id, _ = self.uploaded_record(patient_client)
        doctor_client, doctor_signup = self.signup('doctor', 'doc@example.com')
        session_token = cookie_value(doctor_signup)
        client = self.app.test_client()

        self.assert_error(client.get(f'/api/records/{second_id}?token={first_token}'), 401, 'RECORD_MISMATCH')
        self.assert_error(client.get(f'/api/records/{first_id}'), 401, 'INVALID_TOKEN')
        self.assert_error(client.get(f'/api/records/{first_id}?token=garbage'), 401, 'INVALID_TOKEN')
        self.assert_error(client.get(f'/api/records/{first_id}?token={session_token}'), 401, 'WRONG_SCOPE')
        self.assertEqual(AccessLog.query.count(), 0)

    def test_regenerated_link_leaves_old_token_valid(self):
        client, _ = self.patient()
        record_id, old_token = self.uploaded_record(client)

        response = client.post(f'/api/patient/records/{record_id}/qr')
        self.assertEqual(response.status_code, 200)
        data = response.get_json()['data']
        new_token = token_from_url(data['accessUrl'])

        listed = client.get('/api/patient/records').get_json()['data'][0]
        self.assertEqual(listed['accessUrl'], data['accessUrl'])

        viewer = self.app.test_client()
        self.assertEqual(viewer.get(f'/api/records/{record_id}?token={old_token}').status_code, 200)
        self.assertEqual(viewer.get(f'/api/records/{record_id}?token={new_token}').status_code, 200)

    def test_regenerate_and_delete_require_ownership(self):
        owner, _ = self.patient()
        record_id, _ = self.uploaded_record(owner)
        intruder, _ = self.patient('intruder@example.com')

        self.assert_error(intruder.post(f'/api/patient/records/{record_id}/qr'), 404, 'RECORD_NOT_FOUND')
        self.assert_error(intruder.delete(f'/api/patient/records/{record_id}'), 404, 'RECORD_NOT_FOUND')

    def test_deleted_record_is_gone_but_log_remains(self):
        client, _ = self.patient()
        record_id, token = self.uploaded_record(client)
        self.assertEqual(self.app.test_client().get(f'/api/records/{record_id}?token={token}').status_code, 200)
        logged_before = client.get('/api/logs/me').get_json()['data']

        doctor_client, _ = self.doctor()
        request_id = doctor_client.post('/api/profile-access/requests', json={
            'patientId': logged_before[0]['patientId'], 'recordId': record_id
        }).get_json()['data']['requestId']

        response = client.delete(f'/api/patient/records/{record_id}')
        self.assertEqual(response.get_json()['data'], {'recordId': record_id, 'deleted': True})

        self.assert_error(self.app.test_client().get(f'/api/records/{record_id}?token={token}'), 404, 'RECORD_NOT_FOUND')
        logs = client.get('/api/logs/me').get_json()['data']
        self.assertEqual(logs, logged_before)
        self.assertEqual(logs[0]['recordId'], record_id)

        db.session.expire_all()
        self.assertEqual(db.session.get(ProfileAccessRequest, request_id).record_id, record_id)

        # A later upload never takes over the deleted record's id
        new_record_id, _ = self.uploaded_record(client)
        self.assertGreater(new_record_id, record_id)

    def test_audit_failure_withholds_record(self):
        client, _ = self.patient()
        record_id, token = self.uploaded_record(client)

        with patch('record_service.AuditService.log_record_viewed',
                   side_effect=OperationalError('INSERT', {}, Exception('database is locked'))):
            response = self.app.test_client().get(f'/api/records/{record_id}?token={token}')

        self.assert_error(response, 500, 'INTERNAL_ERROR')
        self.assertNotIn('medicalData', response.get_data(as_text=True))

    def test_notification_failure_does_not_block_view(self):
        client, _ = self.patient()
        record_id, token = self.uploaded_record(client)
        notifier = Notifier(host='smtp.invalid', user='u', password='p')
        self.app.extensions['notifier'] = notifier

        with patch('notification_service.smtplib.SMTP', side_effect=OSError('smtp down')) as smtp:
            response = self.app.test_client().get(f'/api/records/{record_id}?token={token}')
            notifier.shutdown()

        self.assertEqual(response.status_code, 200)
        self.assertTrue(smtp.called)
        self.assertEqual(AccessLog.query.count(), 1)

    def test_slow_mail_server_does_not_delay_view(self):
        client, _ = self.patient()
        record_id, token = self.uploaded_record(client)
        notifier = Notifier(host='smtp.invalid', user='u', password='p')
        self.app.extensions['notifier'] = notifier

        responded = threading.Event()
        release = threading.Event()
        seen = []

        def hanging_smtp(*args, **kwargs):
            release.wait(3)
            seen.append(responded.is_set())
            raise OSError('smtp timed out')

        with patch('notification_service.smtplib.SMTP', side_effect=hanging_smtp):
            response = self.app.test_client().get(f'/api/records/{record_id}?token={token}')
            responded.set()
            release.set()
            notifier.shutdown()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['data']['recordId'], record_id)
        # Delivery was still in flight when the response came back
        self.assertEqual(seen, [True])

    def test_logs_require_patient(self):
        doctor_client, _ = self.doctor()
        self.assert_error(doctor_client.get('/api/logs/me'), 403, 'FORBIDDEN')
        self.assert_error(self.app.test_client().get('/api/logs/me'), 401, 'AUTH_REQUIRED')


class ProfileAccessAPITestCase(HealthLockAPITestCase):

    def setUp(self):
        super().setUp()
        self.patient_client, self.patient_id = self.patient()
        self.record_id, _ = self.uploaded_record(self.patient_client)
        self.doctor_client, self.doctor_id = self.doctor()

        patient = db.session.get(Patient, self.patient_id)
        patient.hemoglobin = 13.2
        patient.blood_pressure_systolic = 121.0
        patient.health_last_report_name = 'cbc.pdf'
        db.session.commit()

    def request_access(self, client=None, record_id=None):
        client = client or self.doctor_client
        return client.post('/api/profile-access/requests', json={
            'patientId': self.patient_id, 'recordId': record_id or self.record_id
        })

    def test_request_approve_and_read_profile(self):
        response = self.request_access()
        self.assertEqual(response.status_code, 201)
        created = response.get_json()['data']
        request_id = created['requestId']
        self.assertEqual(created['status'], 'pending')
        self.assertEqual(created['approvalUrl'],
                         f'http://frontend.test/patient?tab=requests&requestId={request_id}')

        again = self.request_access().get_json()['data']
        self.assertEqual(again['requestId'], request_id)

        pending = self.patient_client.get('/api/profile-access/requests/patient').get_json()['data']
        self.assertEqual([p['requestId'] for p in pending], [request_id])
        self.assertEqual(pending[0]['doctor']['id'], self.doctor_id)
        self.assertEqual(pending[0]['doctor']['specialization'], 'Cardiology')
        self.assertEqual(pending[0]['recordId'], self.record_id)

        status = self.doctor_client.get(f'/api/profile-access/requests/{request_id}').get_json()['data']
        self.assertEqual(status['status'], 'pending')
        self.assertIsNone(status['profile'])
        self.assertIsNone(status['approvedAt'])

        response = self.patient_client.post(f'/api/profile-access/requests/{request_id}/approve')
        self.assertEqual(response.status_code, 200)
        approved = response.get_json()['data']
        self.assertEqual(approved['status'], 'approved')
        self.assertIsNotNone(approved['approvedAt'])

        repeat = self.patient_client.post(f'/api/profile-access/requests/{request_id}/approve').get_json()['data']
        self.assertEqual(repeat['approvedAt'], approved['approvedAt'])

        status = self.doctor_client.get(f'/api/profile-access/requests/{request_id}').get_json()['data']
        self.assertEqual(status['status'], 'approved')
        self.assertEqual(status['profile']['id'], self.patient_id)
        self.assertEqual(status['profile']['healthProfile']['hemoglobin'], 13.2)
        self.assertEqual(status['profile']['healthProfile']['bloodPressureSystolic'], 121.0)
        self.assertEqual(status['profile']['healthProfile']['lastReportName'], 'cbc.pdf')

        self.assertEqual(self.patient_client.get('/api/profile-access/requests/patient').get_json()['data'], [])

        other_doctor, _ = self.doctor('other-doc@example.com')
        self.assert_error(other_doctor.get(f'/api/profile-access/requests/{request_id}'), 404, 'REQUEST_NOT_FOUND')

    def test_expired_request(self):
        request_id = self.request_access().get_json()['data']['requestId']
        access_request = db.session.get(ProfileAccessRequest, request_id)
        access_request.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()

        self.assertEqual(self.patient_client.get('/api/profile-access/requests/patient').get_json()['data'], [])
        self.assert_error(self.patient_client.post(f'/api/profile-access/requests/{request_id}/approve'),
                          400, 'REQUEST_EXPIRED')
        status = self.doctor_client.get(f'/api/profile-access/requests/{request_id}').get_json()['data']
        self.assertEqual(status['status'], 'expired')
        self.assertIsNone(status['profile'])

        renewed = self.request_access().get_json()['data']
        self.assertNotEqual(renewed['requestId'], request_id)

    def test_reject_request(self):
        request_id = self.request_access().get_json()['data']['requestId']

        response = self.patient_client.post(f'/api/profile-access/requests/{request_id}/reject')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['data']['status'], 'rejected')

        self.assert_error(self.patient_client.post(f'/api/profile-access/requests/{request_id}/approve'),
                          400, 'REQUEST_NOT_APPROVABLE')
        status = self.doctor_client.get(f'/api/profile-access/requests/{request_id}').get_json()['data']
        self.assertEqual(status['status'], 'rejected')
        self.assertIsNone(status['profile'])

    def test_reject_after_approval_refused(self):
        request_id = self.request_access().get_json()['data']['requestId']
        self.patient_client.post(f'/api/profile-access/requests/{request_id}/approve')
        self.assert_error(self.patient_client.post(f'/api/profile-access/requests/{request_id}/reject'),
                          400, 'REQUEST_NOT_REJECTABLE')

    def test_other_patient_cannot_approve(self):
        request_id = self.request_access().get_json()['data']['requestId']
        intruder, _ = self.patient('intruder@example.com')
        self.assert_error(intruder.post(f'/api/profile-access/requests/{request_id}/approve'),
                          404, 'REQUEST_NOT_FOUND')

    def test_request_for_foreign_record_looks_missing(self):
        other_client, _ = self.patient('other@example.com')
        foreign_record_id, _ = self.uploaded_record(other_client)
        self.assert_error(self.request_access(record_id=foreign_record_id), 404, 'RECORD_NOT_FOUND')

    def test_request_payload_and_roles(self):
        response = self.doctor_client.post('/api/profile-access/requests', json={'patientId': self.patient_id})
        self.assert_error(response, 400, 'INVALID_REQUEST_PAYLOAD')
        self.assert_error(self.request_access(client=self.patient_client), 403, 'FORBIDDEN')
        self.assert_error(self.doctor_client.get('/api/profile-access/requests/patient'), 403, 'FORBIDDEN')
        self.assert_error(self.patient_client.get('/api/profile-access/requests/1'), 403, 'FORBIDDEN')


if __name__ == '__main__':
    unittest.main()
