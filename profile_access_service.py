"""
Profile access requests: doctor asks, patient approves, request expires.

    pending -> approved   (patient approves before expiry)
    pending -> rejected   (patient rejects before expiry)
    pending -> expired    (first read at or after expires_at)

approved, rejected and expired are terminal. Expiry is applied lazily on
every read path through ``materialize``; there is no background sweep.
"""
import logging
from flask import current_app
from models import ProfileAccessRequest, Patient, Doctor, Record, db, utcnow
from errors import ValidationError, NotFound
from notification_service import get_notifier


logger = logging.getLogger(__name__)

PENDING = ProfileAccessRequest.STATUS_PENDING
APPROVED = ProfileAccessRequest.STATUS_APPROVED
REJECTED = ProfileAccessRequest.STATUS_REJECTED
EXPIRED = ProfileAccessRequest.STATUS_EXPIRED


def materialize(request, now):
    """Status the request has at ``now``; no grace period"""
    if request.status == PENDING and now >= request.expires_at:
        return EXPIRED
    return request.status


def _as_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class ProfileAccessService:
    """Consent request lifecycle"""

    @staticmethod
    def _transition(request, to_status, **values):
        """
        Move a pending request to ``to_status``.

        The update only matches rows still pending, so a repeated or
        concurrent transition is a no-op and callers converge on whatever
        terminal state was stored first.
        """
        values.update({'status': to_status, 'updated_at': utcnow()})
        updated = ProfileAccessRequest.query \
            .filter_by(id=request.id, status=PENDING) \
            .update(values, synchronize_session=False)
        db.session.commit()
        db.session.refresh(request)

        if updated:
            logger.info(f"Profile access request {request.id}: {PENDING} -> {to_status}")
        return request

    @staticmethod
    def apply_expiry(request, now=None):
        now = now or utcnow()
        if materialize(request, now) == EXPIRED and request.status == PENDING:
            ProfileAccessService._transition(request, EXPIRED)
        return request

    @staticmethod
    def approval_url(request):
        base_url = current_app.config['FRONTEND_BASE_URL']
        return f"{base_url}/patient?tab=requests&requestId={request.id}"

    @staticmethod
    def create_request(doctor_id, patient_id, record_id):
        """
        Create a pending request, or return the live one for the same
        (doctor, patient, record).

        Returns:
            (request, created)
        """
        if not patient_id or not record_id:
            raise ValidationError('patientId and recordId are required', 'INVALID_REQUEST_PAYLOAD')

        doctor_key, patient_key, record_key = _as_id(doctor_id), _as_id(patient_id), _as_id(record_id)

        doctor = db.session.get(Doctor, doctor_key) if doctor_key is not None else None
        if not doctor:
            raise NotFound('Doctor not found', 'DOCTOR_NOT_FOUND')

        patient = db.session.get(Patient, patient_key) if patient_key is not None else None
        if not patient:
            raise NotFound('Patient not found', 'PATIENT_NOT_FOUND')

        # A record of another patient is reported exactly like a missing one
        record = db.session.get(Record, record_key) if record_key is not None else None
        if not record or record.patient_id != patient.id:
            raise NotFound('Record not found for patient', 'RECORD_NOT_FOUND')

        now = utcnow()
        request = ProfileAccessRequest.query.filter(
            ProfileAccessRequest.doctor_id == doctor.id,
            ProfileAccessRequest.patient_id == patient.id,
            ProfileAccessRequest.record_id == record.id,
            ProfileAccessRequest.status == PENDING,
            ProfileAccessRequest.expires_at > now
        ).order_by(ProfileAccessRequest.created_at.desc()).first()

        created = request is None
        if created:
            request = ProfileAccessRequest(
                doctor_id=doctor.id,
                patient_id=patient.id,
                record_id=record.id,
                status=PENDING,
                expires_at=now + current_app.config['PROFILE_ACCESS_REQUEST_TTL'],
                created_at=now
            )
            db.session.add(request)
            db.session.commit()
            logger.info(f"Profile access request {request.id} created by doctor {doctor.id} for patient {patient.id}")
        else:
            logger.info(f"Profile access request {request.id} reused for doctor {doctor.id}")

        get_notifier().send_profile_access_request_email(
            email=patient.email,
            patient_name=patient.name,
            doctor_name=doctor.name,
            request_id=request.id,
            approval_url=ProfileAccessService.approval_url(request),
            expires_at=request.expires_at,
        )
        return request, created

    @staticmethod
    def list_pending_for_patient(patient_id):
        """Live pending requests for the patient, newest first"""
        requests = ProfileAccessRequest.query.filter_by(patient_id=patient_id, status=PENDING) \
            .order_by(ProfileAccessRequest.created_at.desc(), ProfileAccessRequest.id.desc()).all()

        now = utcnow()
        for request in requests:
            ProfileAccessService.apply_expiry(request, now)

        return [request for request in requests if request.status == PENDING]

    @staticmethod
    def _get_for_patient(request_id, patient_id):
        request_key = _as_id(request_id)
        request = None
        if request_key is not None:
            request = ProfileAccessRequest.query.filter_by(id=request_key, patient_id=patient_id).first()
        if not request:
            raise NotFound('Request not found', 'REQUEST_NOT_FOUND')
        return ProfileAccessService.apply_expiry(request)

    @staticmethod
    def approve(request_id, patient_id):
        """
        Approve a live pending request of the patient.

        A request that is no longer pending is returned unchanged; the caller
        reads its status to tell expired from otherwise not approvable.
        """
        request = ProfileAccessService._get_for_patient(request_id, patient_id)
        if request.status != PENDING:
            return request
        return ProfileAccessService._transition(request, APPROVED, approved_at=utcnow())

    @staticmethod
    def reject(request_id, patient_id):
        """Reject a live pending request of the patient; same contract as approve"""
        request = ProfileAccessService._get_for_patient(request_id, patient_id)
        if request.status != PENDING:
            return request
        return ProfileAccessService._transition(request, REJECTED)

    @staticmethod
    def get_status_for_doctor(request_id, doctor_id):
        """
        The request as seen by the doctor who made it.

        This is the only read path that hands health profile data to a
        doctor, and it does so only for an approved request.
        """
        request_key = _as_id(request_id)
        request = None
        if request_key is not None:
            request = ProfileAccessRequest.query.filter_by(id=request_key, doctor_id=_as_id(doctor_id)).first()
        if not request:
            raise NotFound('Request not found', 'REQUEST_NOT_FOUND')

        ProfileAccessService.apply_expiry(request)

        profile = None
        if request.status == APPROVED and request.patient:
            profile = request.patient.to_doctor_view()
        return {'request': request, 'profile': profile}
