from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    return datetime.now(timezone.utc)


class RecomputeRun(db.Model):
    """One recomputation pass, published or failed."""
    __tablename__ = 'recompute_runs'

    id = db.Column(db.Integer, primary_key=True)
    version = db.Column(db.Integer, nullable=False, index=True)
    calculated_by = db.Column(db.String(50), nullable=False)  # scheduled-trigger, manual-trigger
    calculated_at = db.Column(db.BigInteger, nullable=True)  # epoch ms of the publication
    status = db.Column(db.String(20), nullable=False)  # published, failed
    entry_count = db.Column(db.Integer, default=0)
    total_points = db.Column(db.Integer, default=0)
    error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'version': self.version,
            'calculated_by': self.calculated_by,
            'calculated_at': self.calculated_at,
            'status': self.status,
            'entry_count': self.entry_count,
            'total_points': self.total_points,
            'error': self.error,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
