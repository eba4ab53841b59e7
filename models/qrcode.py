# =============================================================================
# 📦 QRCode Model – zentrales, dynamisches QR-Datenmodell (SQLAlchemy 2.0)
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base
from models.qr_scan import utc_now
from utils.qr_content import (
    HISTORY_LIMIT,
    Content,
    content_from_dict,
    history_entry,
    push_history,
)

if TYPE_CHECKING:
    from models.qr_scan import QRScan


# =============================================================================
# 🧩 QRCode-Datenmodell
# =============================================================================
class QRCode(Base):
    """
    Ein gedruckter QR-Code.
    Der aktive Inhalt liegt als JSON in 'content' (genau eine Variante),
    ältere Inhalte in 'history' (maximal 50 Einträge).
    """
    __tablename__ = "qr_codes"

    # ---------------------------------------------------------------------
    # 🧾 Basisattribute
    # ---------------------------------------------------------------------
    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    image_path: Mapped[str] = mapped_column(String(255), nullable=False)

    # ---------------------------------------------------------------------
    # 📄 Inhalt
    # ---------------------------------------------------------------------
    # 'type' und 'description' spiegeln den aktiven Inhalt (für Filter & Suche)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="empty", index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    history: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # ---------------------------------------------------------------------
    # 📊 Statistik
    # ---------------------------------------------------------------------
    scan_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    last_scanned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)

    # ---------------------------------------------------------------------
    # ⚙️ Status & Einstellungen
    # ---------------------------------------------------------------------
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    allow_tracking: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    password: Mapped[Optional[str]] = mapped_column(String(255))
    custom_domain: Mapped[Optional[str]] = mapped_column(String(255), index=True)

    # ---------------------------------------------------------------------
    # 🕒 Zeitstempel
    # ---------------------------------------------------------------------
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, index=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    # ---------------------------------------------------------------------
    # 🔗 Beziehungen
    # ---------------------------------------------------------------------
    scans: Mapped[list["QRScan"]] = relationship(
        "QRScan",
        back_populates="qr",
        cascade="all, delete-orphan",
    )

    # ---------------------------------------------------------------------
    # 📄 Inhalts-Methoden
    # ---------------------------------------------------------------------
    def get_content(self) -> Content:
        """Aktiven Inhalt als Variante (nie None)."""
        return content_from_dict(self.content)

    def set_content(self, content: Content) -> None:
        self.content = content.to_dict()
        self.type = content.type
        self.description = content.description

    def swap_content(self, new_content: Content, now: datetime, changed_by: str = "admin") -> Content:
        """
        Archiviert den bisherigen Inhalt und aktiviert den neuen in einem Schritt.
        Gibt den abgelösten Inhalt zurück.
        """
        previous = self.get_content()
        self.history = push_history(
            self.history, history_entry(previous, now, changed_by), HISTORY_LIMIT
        )
        self.set_content(new_content.activated(now))
        return previous

    def register_scan(self, now: datetime) -> None:
        self.scan_count = (self.scan_count or 0) + 1
        self.last_scanned_at = now

    @property
    def settings(self) -> Dict[str, Any]:
        return {
            "allow_tracking": bool(self.allow_tracking),
            "password": self.password,
            "custom_domain": self.custom_domain,
        }

    @property
    def is_password_protected(self) -> bool:
        return bool(self.password)

    # ---------------------------------------------------------------------
    # 📌 Repräsentation
    # ---------------------------------------------------------------------
    def __repr__(self) -> str:
        return (
            f"<QRCode(id='{self.id}', type='{self.type}', title='{self.title}', "
            f"active={self.active}, scans={self.scan_count})>"
        )
