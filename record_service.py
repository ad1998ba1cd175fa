"""
Patient records: upload, listing, deletion and token gated retrieval
"""
import base64
import binascii
import logging
from urllib.parse import urlencode
from flask import current_app
from models import Record, Doctor, db
from errors import ValidationError, NotFound
from token_service import get_token_service
from audit_service import AuditService
from qr_code import generate_qr_code_data_url


logger = logging.getLogger(__name__)

PDF_MIME_TYPE = 'application/pdf'
PDF_DATA_URL_PREFIX = 'data:application/pdf;base64,'


def format_ttl(ttl):
    """Short form of a token lifetime, e.g. '10m'"""
    seconds = int(ttl.total_seconds())
    for unit, size in (('d', 86400), ('h', 3600), ('m', 60)):
        if seconds % size == 0:
            return f'{seconds // size}{unit}'
    return f'{seconds}s'


def parse_pdf_upload(medical_data, max_bytes):
    """
    Validate an uploaded medicalData payload.

    Args:
        medical_data: {'file': data URL, 'fileType': MIME type, 'fileName': name}
        max_bytes: largest accepted decoded size

    Returns:
        (file_name, file_type, content bytes)
    """
    if not isinstance(medical_data, dict) or not medical_data.get('file'):
        raise ValidationError('medicalData and its file property are required', 'INVALID_UPLOAD_PAYLOAD')

    file_type = str(medical_data.get('fileType') or '').lower()
    file_data = str(medical_data.get('file') or '')

    if file_type != PDF_MIME_TYPE or not file_data.startswith(PDF_DATA_URL_PREFIX):
        raise ValidationError('Only PDF files are allowed', 'INVALID_FILE_TYPE')

    encoded = file_data[len(PDF_DATA_URL_PREFIX):]
    if (len(encoded) * 3) // 4 > max_bytes:
        raise ValidationError(f'PDF is too large. Max size is {max_bytes // (1024 * 1024)}MB', 'FILE_TOO_LARGE')

    try:
        content = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError('File content is not valid base64', 'INVALID_UPLOAD_PAYLOAD')

    if not content:
        raise ValidationError('File is empty', 'INVALID_UPLOAD_PAYLOAD')
    if len(content) > max_bytes:
        raise ValidationError(f'PDF is too large. Max size is {max_bytes // (1024 * 1024)}MB', 'FILE_TOO_LARGE')

    file_name = str(medical_data.get('fileName') or '').strip() or 'report.pdf'
    return file_name, PDF_MIME_TYPE, content


def medical_data_dict(record):
    return {
        'fileName': record.file_name or '',
        'fileType': record.file_type,
        'file': f'data:{record.file_type};base64,' + base64.b64encode(record.file_data).decode(),
    }


class RecordService:
    """Handle record storage and access link issuance"""

    @staticmethod
    def create_record(patient, medical_data):
        file_name, file_type, content = parse_pdf_upload(
            medical_data, current_app.config['MAX_PDF_BYTES']
        )
        record = Record(
            patient_id=patient.id,
            file_name=file_name,
            file_type=file_type,
            file_data=content,
        )
        db.session.add(record)
        db.session.commit()

        logger.info(f"Stored record {record.id} for patient {patient.id} ({len(content)} bytes)")
        return record

    @staticmethod
    def list_records(patient_id):
        return Record.query.filter_by(patient_id=patient_id) \
            .order_by(Record.created_at.desc(), Record.id.desc()).all()

    @staticmethod
    def get_record_for_patient(record_id, patient_id):
        """Owned record or NotFound; other patients' records look absent"""
        record = Record.query.filter_by(id=record_id, patient_id=patient_id).first()
        if not record:
            raise NotFound('Record not found', 'RECORD_NOT_FOUND')
        return record

    @staticmethod
    def delete_record(record_id, patient_id):
        record = RecordService.get_record_for_patient(record_id, patient_id)
        db.session.delete(record)
        db.session.commit()
        logger.info(f"Record {record_id} deleted by patient {patient_id}")

    @staticmethod
    def build_access_url(record_id, token):
        base_url = current_app.config['FRONTEND_BASE_URL']
        return f"{base_url}/doctor?{urlencode({'id': record_id, 'token': token})}"

    @staticmethod
    def issue_access_link(record):
        """
        Mint a record token and the QR encodable URL carrying it.

        Earlier tokens for the same record stay valid until they expire;
        ``record.access_url`` only remembers the latest link.
        """
        token_service = get_token_service()
        token = token_service.issue_record_token(record.id)
        access_url = RecordService.build_access_url(record.id, token)

        record.access_url = access_url
        db.session.commit()

        logger.info(f"Issued access link for record {record.id}")
        return {
            'recordId': record.id,
            'accessUrl': access_url,
            'qrCodeDataUrl': generate_qr_code_data_url(access_url),
            'tokenExpiresIn': format_ttl(token_service.record_ttl),
        }

    @staticmethod
    def open_with_token(record_id, token, doctor_id=None, ip=None, user_agent=None):
        """
        Token gated read of a record.

        The token is verified first, then the view is written to the audit
        log, and only then is the record handed back to the caller.

        Returns:
            (record, log entry, doctor or None)
        """
        get_token_service().verify_record_token(token, record_id)

        record = db.session.get(Record, int(record_id))
        if not record:
            raise NotFound('Record not found', 'RECORD_NOT_FOUND')

        doctor = None
        if doctor_id is not None:
            try:
                doctor = db.session.get(Doctor, int(doctor_id))
            except (TypeError, ValueError):
                doctor = None

        entry = AuditService.log_record_viewed(
            patient_id=record.patient_id,
            record_id=record.id,
            doctor_id=doctor.id if doctor else None,
            ip=ip,
            user_agent=user_agent,
            meta={'via': 'qr'},
        )
        return record, entry, doctor
