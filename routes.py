"""
HTTP routes - JSON envelope {success, data} / {success, error}
"""
from flask import Blueprint, request, jsonify, make_response
import logging
from auth_service import (
    AuthService, login_required, role_required, current_user,
    set_session_cookie, clear_session_cookie
)
from record_service import RecordService, medical_data_dict
from profile_access_service import ProfileAccessService, EXPIRED, APPROVED, REJECTED
from audit_service import AuditService
from token_service import get_token_service
from notification_service import get_notifier
from models import isoformat
from errors import AuthRequired, RequestExpired, RequestNotApprovable, RequestNotRejectable

logger = logging.getLogger(__name__)

# Create Blueprints
auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')
patient_bp = Blueprint('patient', __name__, url_prefix='/api/patient')
records_bp = Blueprint('records', __name__, url_prefix='/api/records')
profile_access_bp = Blueprint('profile_access', __name__, url_prefix='/api/profile-access')
logs_bp = Blueprint('logs', __name__, url_prefix='/api/logs')
health_bp = Blueprint('health', __name__, url_prefix='/api')


def ok(data=None, status_code=200):
    return jsonify({'success': True, 'data': data}), status_code


def json_body():
    """Request body as a dict; JSON that is not an object reads as empty"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def current_account():
    user = current_user()
    return AuthService.get_account(user['id'], user['role'])


def redirect_for_role(role):
    return '/doctor' if role == 'doctor' else '/patient'


def session_payload(account):
    return {
        'role': account.role,
        'redirectUrl': redirect_for_role(account.role),
        'user': account.summary_dict(),
    }


# ===== AUTH =====

@auth_bp.route('/signup', methods=['POST'])
def signup():
    """POST /api/auth/signup - Create an account and start a session"""
    data = json_body()
    account = AuthService.signup(
        role=data.get('role'),
        name=data.get('name'),
        email=data.get('email'),
        password=data.get('password'),
        phone=data.get('phone'),
        specialization=data.get('specialization')
    )

    token = get_token_service().issue_session(account.id, account.role)
    response = make_response(jsonify({'success': True, 'data': session_payload(account)}), 201)
    set_session_cookie(response, token, remember_me=False)

    get_notifier().send_signup_email(account.email, account.name, account.role)
    return response


@auth_bp.route('/signin', methods=['POST'])
def signin():
    """POST /api/auth/signin - Verify credentials and start a session"""
    data = json_body()
    remember_me = bool(data.get('rememberMe'))
    account = AuthService.signin(data.get('role'), data.get('email'), data.get('password'))

    token = get_token_service().issue_session(account.id, account.role, remember_me=remember_me)
    response = make_response(jsonify({'success': True, 'data': session_payload(account)}))
    set_session_cookie(response, token, remember_me=remember_me)

    get_notifier().send_login_email(account.email, account.name, account.role)
    return response


@auth_bp.route('/session', methods=['GET'])
def session():
    """GET /api/auth/session - Who is calling"""
    user = current_user()
    if not user:
        raise AuthRequired('Not authenticated')
    return ok({'userId': user['id'], 'role': user['role']})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    response = make_response(jsonify({'success': True}))
    return clear_session_cookie(response)


@auth_bp.route('/me', methods=['GET'])
@login_required
def get_me():
    return ok(current_account().to_profile_dict())


@auth_bp.route('/me', methods=['PUT'])
@login_required
def update_me():
    account = AuthService.update_profile(current_account(), json_body())
    return ok(account.to_profile_dict())


# ===== PATIENT RECORDS =====

@patient_bp.route('/records', methods=['POST'])
@role_required('patient')
def upload_record():
    """
    POST /api/patient/records
    Store an uploaded PDF and return a QR encodable access link for it.

    Request body: {
        "medicalData": {"file": "data:application/pdf;base64,...", "fileType": "application/pdf", "fileName": "..."},
        "doctorEmail": "optional address to notify"
    }
    """
    data = json_body()
    patient = current_account()
    record = RecordService.create_record(patient, data.get('medicalData'))
    link = RecordService.issue_access_link(record)

    notifier = get_notifier()
    notifier.send_qr_generated_email(
        patient.email, patient.name, record.id, link['accessUrl'], 'patient'
    )
    doctor_email = str(data.get('doctorEmail') or '').strip()
    if doctor_email:
        notifier.send_qr_generated_email(
            doctor_email, 'Doctor', record.id, link['accessUrl'], 'doctor'
        )

    return ok(link, 201)


@patient_bp.route('/records', methods=['GET'])
@role_required('patient')
def list_records():
    records = RecordService.list_records(int(current_user()['id']))
    return ok([record.to_dict() for record in records])


@patient_bp.route('/records/<int:record_id>/qr', methods=['POST'])
@role_required('patient')
def regenerate_qr(record_id):
    """POST /api/patient/records/<id>/qr - New token and link for an owned record"""
    record = RecordService.get_record_for_patient(record_id, int(current_user()['id']))
    return ok(RecordService.issue_access_link(record))


@patient_bp.route('/records/<int:record_id>', methods=['DELETE'])
@role_required('patient')
def delete_record(record_id):
    RecordService.delete_record(record_id, int(current_user()['id']))
    return ok({'recordId': record_id, 'deleted': True})


# ===== TOKEN GATED RECORD ACCESS =====

@records_bp.route('/<record_id>', methods=['GET'])
def get_record(record_id):
    """
    GET /api/records/<id>?token=<record token>
    No session needed, the token is the credential. A doctor session, when
    present, is attached to the audit entry.
    """
    user = current_user()
    doctor_id = user['id'] if user and user['role'] == 'doctor' else None

    record, entry, doctor = RecordService.open_with_token(
        record_id,
        request.args.get('token'),
        doctor_id=doctor_id,
        ip=request.remote_addr,
        user_agent=request.headers.get('User-Agent')
    )

    notifier = get_notifier()
    patient = record.patient
    notifier.send_qr_accessed_email(
        patient.email, patient.name, record.id, record.access_url, entry.created_at, 'patient'
    )
    if doctor:
        notifier.send_qr_accessed_email(
            doctor.email, doctor.name, record.id, record.access_url, entry.created_at, 'doctor'
        )

    return ok({
        'recordId': record.id,
        'medicalData': medical_data_dict(record),
        'accessedLogId': entry.id
    })


# ===== PROFILE ACCESS REQUESTS =====

def request_state_dict(access_request):
    return {
        'requestId': access_request.id,
        'status': access_request.status,
        'createdAt': isoformat(access_request.created_at),
        'expiresAt': isoformat(access_request.expires_at),
        'approvedAt': isoformat(access_request.approved_at),
    }


@profile_access_bp.route('/requests', methods=['POST'])
@role_required('doctor')
def create_profile_access_request():
    """POST /api/profile-access/requests - body {patientId, recordId}"""
    data = json_body()
    access_request, _ = ProfileAccessService.create_request(
        doctor_id=current_user()['id'],
        patient_id=data.get('patientId'),
        record_id=data.get('recordId')
    )
    return ok({
        'requestId': access_request.id,
        'status': access_request.status,
        'expiresAt': isoformat(access_request.expires_at),
        'approvalUrl': ProfileAccessService.approval_url(access_request)
    }, 201)


@profile_access_bp.route('/requests/patient', methods=['GET'])
@role_required('patient')
def list_patient_requests():
    requests = ProfileAccessService.list_pending_for_patient(int(current_user()['id']))
    return ok([
        {
            'requestId': access_request.id,
            'status': access_request.status,
            'createdAt': isoformat(access_request.created_at),
            'expiresAt': isoformat(access_request.expires_at),
            'doctor': access_request.doctor.summary_dict() if access_request.doctor else None,
            'recordId': access_request.record_id,
        }
        for access_request in requests
    ])


@profile_access_bp.route('/requests/<request_id>/approve', methods=['POST'])
@role_required('patient')
def approve_request(request_id):
    access_request = ProfileAccessService.approve(request_id, int(current_user()['id']))
    if access_request.status == EXPIRED:
        raise RequestExpired()
    if access_request.status != APPROVED:
        raise RequestNotApprovable()
    return ok(request_state_dict(access_request))


@profile_access_bp.route('/requests/<request_id>/reject', methods=['POST'])
@role_required('patient')
def reject_request(request_id):
    access_request = ProfileAccessService.reject(request_id, int(current_user()['id']))
    if access_request.status == EXPIRED:
        raise RequestExpired()
    if access_request.status != REJECTED:
        raise RequestNotRejectable()
    return ok(request_state_dict(access_request))


@profile_access_bp.route('/requests/<request_id>', methods=['GET'])
@role_required('doctor')
def get_request_status(request_id):
    """GET /api/profile-access/requests/<id> - Poll status; profile only once approved"""
    result = ProfileAccessService.get_status_for_doctor(request_id, current_user()['id'])
    data = request_state_dict(result['request'])
    data['profile'] = result['profile']
    return ok(data)


# ===== ACCESS LOGS =====

@logs_bp.route('/me', methods=['GET'])
@role_required('patient')
def patient_logs():
    logs = AuditService.get_logs_for_patient(int(current_user()['id']))
    return ok([entry.to_dict() for entry in logs])


@logs_bp.route('/doctor', methods=['GET'])
@role_required('doctor')
def doctor_logs():
    logs = AuditService.get_logs_for_doctor(int(current_user()['id']))
    return ok([entry.to_dict() for entry in logs])


# ===== HEALTH CHECK =====

@health_bp.route('/health', methods=['GET'])
def health_check():
    """GET /api/health - Health check"""
    return ok({'status': 'ok'})
