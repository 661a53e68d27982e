from datetime import datetime

from sectorstock.extensions import db


class Item(db.Model):
    __tablename__ = "inventory_items"
    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String, unique=True, nullable=True)
    name = db.Column(db.String, nullable=False)
    unit = db.Column(db.String, default="ea")


class Sector(db.Model):
    __tablename__ = "sectors"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String, nullable=False)


class StockEntry(db.Model):
    """Current quantity of one item in one sector."""

    __tablename__ = "inventory_stock"

    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), primary_key=True)
    sector_id = db.Column(db.Integer, db.ForeignKey("sectors.id"), primary_key=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inventory_stock_quantity_non_negative"),
    )


class MovementDirection:
    IN = "in"
    OUT = "out"
    TRANSFER = "transfer"

    ALL = (IN, OUT, TRANSFER)


class TransferStatus:
    PENDING = "pending"
    SIGNED = "signed"


class Movement(db.Model):
    __tablename__ = "inventory_movements"
    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    direction = db.Column(db.String(16), nullable=False)  # in, out, transfer
    source_sector_id = db.Column(db.Integer, db.ForeignKey("sectors.id"), nullable=True)
    target_sector_id = db.Column(db.Integer, db.ForeignKey("sectors.id"), nullable=True)
    reason = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    ts = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    transfer_status = db.Column(
        db.String(16), nullable=False, default=TransferStatus.PENDING
    )
    transfer_form_key = db.Column(db.String, nullable=True)
    transfer_form_url = db.Column(db.String, nullable=True)

    item = db.relationship("Item")

    @property
    def is_signed(self) -> bool:
        return self.transfer_status == TransferStatus.SIGNED


class PublicSigningToken(db.Model):
    __tablename__ = "inventory_public_tokens"
    id = db.Column(db.Integer, primary_key=True)
    movement_id = db.Column(
        db.Integer, db.ForeignKey("inventory_movements.id"), nullable=False, index=True
    )
    token = db.Column(db.String(64), nullable=False, unique=True)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at < (now or datetime.utcnow())


class MovementFileKind:
    SIGNATURE = "signature"
    TRANSFER_FORM = "transfer_form"


class MovementFile(db.Model):
    __tablename__ = "inventory_movement_files"
    id = db.Column(db.Integer, primary_key=True)
    movement_id = db.Column(
        db.Integer, db.ForeignKey("inventory_movements.id"), nullable=False, index=True
    )
    file_key = db.Column(db.String, nullable=False)
    file_url = db.Column(db.String, nullable=False)
    mime = db.Column(db.String(120), nullable=True)
    label = db.Column(db.String, nullable=True)
    kind = db.Column(db.String(32), nullable=False, default=MovementFileKind.SIGNATURE)
    # Signers reached through a public token are anonymous.
    uploaded_by = db.Column(db.Integer, nullable=True)
    uploaded_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
