from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
from sqlalchemy import Index

from password_service import hash_password, verify_password

db = SQLAlchemy()


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() if value else None


class AccountMixin:
    """Columns and behaviour shared by both account kinds"""
    role = None

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)

    # Credential material is kept column by column so the algorithm can migrate
    password_hash = db.Column(db.String(256), nullable=True)
    password_salt = db.Column(db.String(64), nullable=True)
    password_iterations = db.Column(db.Integer, nullable=True)
    password_keylen = db.Column(db.Integer, nullable=True)
    password_digest = db.Column(db.String(20), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def set_password(self, password):
        material = hash_password(password)
        self.password_hash = material['hash']
        self.password_salt = material['salt']
        self.password_iterations = material['iterations']
        self.password_keylen = material['keylen']
        self.password_digest = material['digest']

    def check_password(self, password):
        return verify_password(password, {
            'salt': self.password_salt,
            'hash': self.password_hash,
            'iterations': self.password_iterations,
            'keylen': self.password_keylen,
            'digest': self.password_digest,
        })

    def summary_dict(self):
        return {
            'id': self.id,
            'name': self.name or '',
            'email': self.email,
        }

    def to_profile_dict(self):
        result = {
            'id': self.id,
            'role': self.role,
            'name': self.name or '',
            'email': self.email,
            'createdAt': isoformat(self.created_at),
        }
        result.update(self.role_fields())
        return result

    def role_fields(self):
        return {}

    def apply_role_fields(self, data):
        """Update the role specific profile fields present in data"""

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.email}>'


class Patient(AccountMixin, db.Model):
    """Patient account with its embedded health profile"""
    __tablename__ = 'patients'
    role = 'patient'

    phone = db.Column(db.String(40), nullable=True)

    # Health profile, written by the report analysis pipeline only
    hemoglobin = db.Column(db.Float, nullable=True)
    glucose = db.Column(db.Float, nullable=True)
    cholesterol = db.Column(db.Float, nullable=True)
    bmi = db.Column(db.Float, nullable=True)
    heart_rate = db.Column(db.Float, nullable=True)
    blood_pressure_systolic = db.Column(db.Float, nullable=True)
    blood_pressure_diastolic = db.Column(db.Float, nullable=True)
    health_last_analyzed_at = db.Column(db.DateTime, nullable=True)
    health_last_report_name = db.Column(db.String(255), nullable=True)

    records = db.relationship('Record', backref='patient', lazy=True, cascade='all, delete-orphan')

    def role_fields(self):
        return {'phone': self.phone or ''}

    def apply_role_fields(self, data):
        if 'phone' in data:
            self.phone = str(data.get('phone') or '').strip() or None

    def health_profile_dict(self):
        return {
            'hemoglobin': self.hemoglobin,
            'glucose': self.glucose,
            'cholesterol': self.cholesterol,
            'bmi': self.bmi,
            'heartRate': self.heart_rate,
            'bloodPressureSystolic': self.blood_pressure_systolic,
            'bloodPressureDiastolic': self.blood_pressure_diastolic,
            'lastAnalyzedAt': isoformat(self.health_last_analyzed_at),
            'lastReportName': self.health_last_report_name or '',
        }

    def to_doctor_view(self):
        """Snapshot a doctor receives once profile access is approved"""
        return {
            'id': self.id,
            'name': self.name or '',
            'email': self.email or '',
            'phone': self.phone or '',
            'healthProfile': self.health_profile_dict(),
        }


class Doctor(AccountMixin, db.Model):
    """Doctor account"""
    __tablename__ = 'doctors'
    role = 'doctor'

    specialization = db.Column(db.String(120), nullable=True)

    def role_fields(self):
        return {'specialization': self.specialization or ''}

    def apply_role_fields(self, data):
        if 'specialization' in data:
            self.specialization = str(data.get('specialization') or '').strip() or None

    def summary_dict(self):
        result = super().summary_dict()
        result['specialization'] = self.specialization or ''
        return result


# Role name -> account model; the only place a role string selects behaviour
ACCOUNT_MODELS = {
    Patient.role: Patient,
    Doctor.role: Doctor,
}


class Record(db.Model):
    """One uploaded medical report owned by a patient"""
    __tablename__ = 'records'

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)
    file_name = db.Column(db.String(255), nullable=True)
    file_type = db.Column(db.String(100), nullable=False)
    file_data = db.Column(db.LargeBinary, nullable=False)
    # Last issued link, informational only
    access_url = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='active')
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Ids are never reused; audit entries keep pointing at deleted records
    __table_args__ = {'sqlite_autoincrement': True}

    def __repr__(self):
        return f'<Record {self.id} patient={self.patient_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'fileName': self.file_name or '',
            'fileType': self.file_type,
            'status': self.status,
            'accessUrl': self.access_url,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }


class ProfileAccessRequest(db.Model):
    """Doctor initiated, patient approved request to view a health profile"""
    __tablename__ = 'profile_access_requests'

    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_EXPIRED = 'expired'
    STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED, STATUS_EXPIRED)

    id = db.Column(db.Integer, primary_key=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('doctors.id'), nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)
    record_id = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    doctor = db.relationship('Doctor', lazy='joined')
    patient = db.relationship('Patient', lazy='joined')

    __table_args__ = (
        Index('idx_request_triple', 'doctor_id', 'patient_id', 'record_id', 'status'),
    )

    def __repr__(self):
        return f'<ProfileAccessRequest {self.id}:{self.status}>'


class AccessLog(db.Model):
    """Immutable entry for one successful record view"""
    __tablename__ = 'access_logs'

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)
    record_id = db.Column(db.Integer, nullable=True, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('doctors.id'), nullable=True, index=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    meta = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    doctor = db.relationship('Doctor', lazy='joined')

    __table_args__ = (
        Index('idx_patient_created', 'patient_id', 'created_at'),
    )

    def __repr__(self):
        return f'<AccessLog {self.patient_id}:{self.record_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'patientId': self.patient_id,
            'recordId': self.record_id,
            'doctor': self.doctor.summary_dict() if self.doctor else None,
            'ip': self.ip_address,
            'userAgent': self.user_agent,
            'meta': self.meta or {},
            'createdAt': isoformat(self.created_at),
        }
