# Database Initialization and Seed Data
import logging

import click

from models import Patient, Doctor, Record, db, utcnow
from record_service import RecordService

logger = logging.getLogger(__name__)

# Smallest well-formed single page PDF
DEMO_PDF = (
    b"%PDF-1.4\n"
    b"1 0 obj<</Type/Catalog/Pages 2 0 R>>endobj\n"
    b"2 0 obj<</Type/Pages/Kids[3 0 R]/Count 1>>endobj\n"
    b"3 0 obj<</Type/Page/Parent 2 0 R/MediaBox[0 0 612 792]>>endobj\n"
    b"trailer<</Root 1 0 R>>\n"
    b"%%EOF\n"
)


def seed_database():
    """Recreate tables and seed a demo patient, doctor and record.

    Must run inside an application context. Returns the access link
    issued for the demo record.
    """
    logger.info("Clearing existing data...")
    db.drop_all()
    db.create_all()

    patient = Patient(
        name='Demo Patient',
        email='patient1@health-lock.local',
        phone='+1-555-0100',
        hemoglobin=13.8,
        glucose=92.0,
        cholesterol=178.0,
        bmi=23.4,
        heart_rate=72.0,
        blood_pressure_systolic=118.0,
        blood_pressure_diastolic=76.0,
        health_last_analyzed_at=utcnow(),
        health_last_report_name='annual-checkup.pdf'
    )
    patient.set_password('patient123')

    doctor = Doctor(
        name='Demo Doctor',
        email='doctor1@health-lock.local',
        specialization='Cardiology'
    )
    doctor.set_password('doctor123')

    db.session.add_all([patient, doctor])
    db.session.commit()
    logger.info(f"Created patient {patient.email} and doctor {doctor.email}")

    record = Record(
        patient_id=patient.id,
        file_name='annual-checkup.pdf',
        file_type='application/pdf',
        file_data=DEMO_PDF
    )
    db.session.add(record)
    db.session.commit()

    link = RecordService.issue_access_link(record)
    logger.info("Database seeding completed successfully!")
    return link


def register_commands(app):
    @app.cli.command('seed-db')
    def seed_db_command():
        """Drop all tables and load demo accounts and a demo record."""
        link = seed_database()
        click.echo(f"Seeded record {link['recordId']}")
        click.echo(f"Access URL (valid {link['tokenExpiresIn']}): {link['accessUrl']}")


if __name__ == '__main__':
    from app import create_app

    with create_app().app_context():
        print(seed_database()['accessUrl'])
