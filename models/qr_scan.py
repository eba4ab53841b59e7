# =============================================================================
# 📊 models/qr_scan.py
# -----------------------------------------------------------------------------
# Enthält das SQLAlchemy-Modell für QR-Code-Scans.
# Jeder Datensatz entspricht einem gezählten Scan mit aktiviertem Tracking
# (Gerät, IP, Referer, Zeit).
# =============================================================================

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from database import Base


def utc_now():
    """Gibt aktuelle UTC-Zeit (timezone-aware) zurück."""
    return datetime.now(timezone.utc)


def ensure_utc(value):
    """SQLite liefert naive Zeitstempel zurück – diese gelten als UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class QRScan(Base):
    __tablename__ = "qr_scans"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci"
    }

    # ---------------------------------------------------------------------
    # 🔹 Primär- & Fremdschlüssel
    # ---------------------------------------------------------------------
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    qr_id = Column(String(40), ForeignKey("qr_codes.id", ondelete="CASCADE"), nullable=False, index=True)

    # ---------------------------------------------------------------------
    # 🔹 Scan-Informationen
    # ---------------------------------------------------------------------
    ip_address = Column(String(64), nullable=True)
    device = Column(String(20), nullable=True)         # mobile / tablet / desktop
    referer = Column(String(500), nullable=True)
    user_agent = Column(String(255), nullable=True)
    country = Column(String(10), nullable=True)        # z. B. aus CF-IPCountry

    # ---------------------------------------------------------------------
    # 🔹 Zeitstempel (UTC-aware)
    # ---------------------------------------------------------------------
    timestamp = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    # ---------------------------------------------------------------------
    # 🔹 Beziehungen
    # ---------------------------------------------------------------------
    qr = relationship("QRCode", back_populates="scans")

    def __repr__(self):
        return (
            f"<QRScan(id={self.id}, qr_id={self.qr_id}, device='{self.device}', "
            f"ip='{self.ip_address}', timestamp={self.timestamp})>"
        )
