"""
Audit and Logging Service
"""
import logging
from models import AccessLog, db, utcnow

logger = logging.getLogger(__name__)


class AuditService:
    """Append and query record view entries"""

    @staticmethod
    def log_record_viewed(patient_id, record_id, doctor_id=None, ip=None, user_agent=None, meta=None):
        """
        Append one entry for a successful record view.

        Unlike notifications this write is not best-effort: a storage failure
        propagates so the record is never returned without its entry.
        """
        entry = AccessLog(
            patient_id=patient_id,
            record_id=record_id,
            doctor_id=doctor_id,
            ip_address=ip,
            user_agent=(user_agent or '')[:500] or None,
            meta=meta or {},
            created_at=utcnow()
        )

        try:
            db.session.add(entry)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.error(f"Failed to write access log for record {record_id}")
            raise

        logger.info(
            f"Audit log: record {record_id} of patient {patient_id} viewed "
            f"by doctor {doctor_id or '-'} from {ip or '-'}"
        )
        return entry

    @staticmethod
    def get_logs_for_patient(patient_id):
        """All views of the patient's records, newest first"""
        return AccessLog.query.filter_by(patient_id=patient_id) \
            .order_by(AccessLog.created_at.desc(), AccessLog.id.desc()).all()

    @staticmethod
    def get_logs_for_doctor(doctor_id):
        """Record views made with the doctor's session, newest first"""
        return AccessLog.query.filter_by(doctor_id=doctor_id) \
            .order_by(AccessLog.created_at.desc(), AccessLog.id.desc()).all()
