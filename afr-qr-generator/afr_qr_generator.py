#!/usr/bin/env python3
"""
AFR (Hungarian Instant Payment System) QR Code Payload Generator
Based on the MNB QR code guideline of 2019-07-12:
https://www.mnb.hu/letoltes/qr-kod-utmutato-20190712.pdf

- Builds validated, immutable payment records (HCT or RTP).
- Serializes them into the 17-line payload the guideline prescribes.
- Optionally hands the payload to the qrcode library to render a PNG.
"""

import argparse
import json
import sys
from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import qrcode

AFR_QR_STANDARD_VERSION = "001"
AFR_QR_CHARSET = "1"
AFR_QR_MAX_LENGTH = 345
AFR_QR_CURRENCY = "HUF"
AMOUNT_DIGITS = 12
MAX_AMOUNT = 10 ** AMOUNT_DIGITS - 1
MAX_DESCRIPTION_LENGTH = 70

Amount = Union[int, float, Decimal]


# ---------- Errors ----------

class AFRQRError(ValueError):
    """Base class for rejected payment record input."""


class InvalidAmount(AFRQRError):
    pass


class DescriptionTooLong(AFRQRError):
    pass


class PayloadTooLong(AFRQRError):
    pass


class InvalidFieldValue(AFRQRError):
    """A text field would break the line structure of the payload."""


# ---------- Data Model ----------

class QRCodeType(str, Enum):
    HCT = "HCT"  # transfer initiation, the payer scans and pushes a payment
    RTP = "RTP"  # payment request


TEXT_FIELDS = (
    "bic", "name", "iban", "purpose", "description", "shop_id", "merch_dev_id",
    "invoice_id", "customer_id", "cred_tran_id", "loyalty_id", "nav_check_id",
)


def normalize_amount(amount: Amount) -> int:
    """
    Check an amount and return it as whole currency units.

    Args:
        amount: Requested amount in HUF

    Returns:
        The amount as int

    Raises:
        InvalidAmount: if the amount is not a whole number between 1 and 999 999 999 999
    """
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        raise InvalidAmount(f"Amount has to be a number, got {amount!r}.")
    try:
        whole = int(amount)
    except (ValueError, OverflowError) as e:
        raise InvalidAmount(f"Amount has to be a number, got {amount!r}.") from e
    if whole != amount:
        raise InvalidAmount(f"Amount has to be a whole number of forints, got {amount!r}.")
    if whole <= 0:
        raise InvalidAmount("Amount has to be greater than 0.")
    if whole > MAX_AMOUNT:
        raise InvalidAmount(f"Amount cannot have more than {AMOUNT_DIGITS} digits.")
    return whole


def format_amount(amount: Optional[int]) -> str:
    """HUF + amount zero-padded to 12 digits, e.g. 1500 -> HUF000000001500."""
    if amount is None:
        return ""
    return f"{AFR_QR_CURRENCY}{amount:0{AMOUNT_DIGITS}d}"


def format_valid_until(d: Optional[datetime]) -> str:
    """
    Format an expiry timestamp as YYYYMMDDhhmmss followed by the UTC offset in hours.

    The offset is signed (+0, +1, -5) and only whole hours are written; any minutes
    are truncated, keeping the sign of the offset (-00:30 -> -0). Datetimes without
    a UTC offset are taken to be in the local time zone.

    Args:
        d: Expiry timestamp or None

    Returns:
        Formatted field value, empty when d is None
    """
    if d is None:
        return ""
    if d.utcoffset() is None:
        d = d.astimezone()
    offset = d.utcoffset().total_seconds()
    sign = "-" if offset < 0 else "+"
    return f"{d.strftime('%Y%m%d%H%M%S')}{sign}{int(abs(offset) // 3600)}"


def format_text(value: Optional[str]) -> str:
    return "" if value is None else str(value)


# Order of the payload lines, one (attribute, formatter) pair per line
PAYLOAD_LAYOUT = [
    ("type", lambda t: t.value),
    ("version", format_text),
    ("charset", format_text),
    ("bic", format_text),
    ("name", format_text),
    ("iban", format_text),
    ("amount", format_amount),
    ("valid_until", format_valid_until),
    ("purpose", format_text),
    ("description", format_text),
    ("shop_id", format_text),
    ("merch_dev_id", format_text),
    ("invoice_id", format_text),
    ("customer_id", format_text),
    ("cred_tran_id", format_text),
    ("loyalty_id", format_text),
    ("nav_check_id", format_text),
]


@dataclass(frozen=True, repr=False)
class InstantTransferQR:
    """
    Content of an Instant Transfer QR code according to the standard of the
    Hungarian National Bank.

    Create instances with create_transfer_initiation_record() or
    create_payment_request_record(); fields are validated once and never change.
    """

    type: QRCodeType
    version: str = field(default=AFR_QR_STANDARD_VERSION, init=False)
    charset: str = field(default=AFR_QR_CHARSET, init=False)

    bic: str
    name: str
    iban: str

    amount: Optional[int] = None
    valid_until: Optional[datetime] = None

    purpose: Optional[str] = None
    description: Optional[str] = None
    shop_id: Optional[str] = None
    merch_dev_id: Optional[str] = None
    invoice_id: Optional[str] = None
    customer_id: Optional[str] = None
    cred_tran_id: Optional[str] = None
    loyalty_id: Optional[str] = None
    nav_check_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "type", QRCodeType(self.type))
        if self.amount is not None:
            object.__setattr__(self, "amount", normalize_amount(self.amount))
        if self.description is not None and len(str(self.description)) > MAX_DESCRIPTION_LENGTH:
            raise DescriptionTooLong(
                f"The description cannot be longer than {MAX_DESCRIPTION_LENGTH} characters "
                f"(got {len(str(self.description))})."
            )
        for name in TEXT_FIELDS:
            value = format_text(getattr(self, name))
            if "\n" in value or "\r" in value:
                raise InvalidFieldValue(f"Field '{name}' cannot contain line breaks.")

    @classmethod
    def create_transfer_initiation_record(cls, **details: Any) -> "InstantTransferQR":
        """
        Returns a new record with type set to HCT.
        Use this if the QR code should be scanned to initiate a transfer.
        """
        return cls(QRCodeType.HCT, **details)

    @classmethod
    def create_payment_request_record(cls, **details: Any) -> "InstantTransferQR":
        """
        Returns a new record with type set to RTP.
        Use this if the beneficiary sends a payment request with the QR code.
        """
        return cls(QRCodeType.RTP, **details)

    def payload_fields(self) -> List[Tuple[str, str]]:
        """Formatted (attribute, value) pairs in payload order."""
        return [(name, fmt(getattr(self, name))) for name, fmt in PAYLOAD_LAYOUT]

    def produce_payload(self) -> str:
        """
        Generate the QR code payload

        Returns:
            One line per field, each terminated by a line feed

        Raises:
            PayloadTooLong: if the payload exceeds 345 characters
        """
        payload = "".join(f"{value}\n" for _, value in self.payload_fields())
        if len(payload) > AFR_QR_MAX_LENGTH:
            raise PayloadTooLong(
                f"Maximum length of {AFR_QR_MAX_LENGTH} characters reached ({len(payload)}). "
                "Reduce the content of the fields."
            )
        return payload

    def __str__(self) -> str:
        return f"{self.type.value} QR-code (BIC: {self.bic}, IBAN: {self.iban}, Name: {self.name})"

    __repr__ = __str__


# ---------- Configuration ----------

OPTIONAL_CONFIG_KEYS = [
    f.name for f in fields(InstantTransferQR)
    if f.init and f.name not in ("type", "bic", "name", "iban", "valid_until")
]


@dataclass
class Config:
    type: QRCodeType
    bic: str
    name: str
    iban: str
    valid_until: Optional[datetime] = None
    details: Dict[str, Any] = field(default_factory=dict)  # amount and the optional text fields
    output_file: Optional[str] = None  # PNG target, nothing is rendered when unset

    @staticmethod
    def load(path: Path) -> "Config":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        required = ["type", "bic", "name", "iban"]
        for k in required:
            if k not in data:
                raise ValueError(f"Missing '{k}' in config JSON")
        try:
            qr_type = QRCodeType(str(data["type"]).upper())
        except ValueError as e:
            raise ValueError(f"Unknown QR code type '{data['type']}' (expected HCT or RTP)") from e
        valid_until = data.get("valid_until")
        return Config(
            type=qr_type,
            bic=data["bic"],
            name=data["name"],
            iban=data["iban"],
            valid_until=datetime.fromisoformat(valid_until) if valid_until else None,
            details={k: data[k] for k in OPTIONAL_CONFIG_KEYS if data.get(k) is not None},
            output_file=data.get("output_file"),
        )

    def build(self) -> InstantTransferQR:
        factory = {
            QRCodeType.HCT: InstantTransferQR.create_transfer_initiation_record,
            QRCodeType.RTP: InstantTransferQR.create_payment_request_record,
        }[self.type]
        return factory(
            bic=self.bic,
            name=self.name,
            iban=self.iban,
            valid_until=self.valid_until,
            **self.details,
        )


# ---------- QR Rendering ----------

def generate_qr_code(payload: str, output_file: str = "afr_qr.png") -> str:
    """
    Generate QR code image from payload

    Args:
        payload: AFR payload string
        output_file: Output filename for QR code image

    Returns:
        The output filename
    """
    qr = qrcode.QRCode(
        version=None,  # Let it auto-determine size
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )

    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    img.save(output_file)

    return output_file


# ---------- Orchestration ----------

def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Generate an AFR instant transfer QR code payload.")
    parser.add_argument("--config", required=True, help="Path to JSON config file")
    parser.add_argument("--output", help="Write the QR code as PNG to this path (overrides output_file)")
    parser.add_argument("--payload-only", action="store_true", help="Print the raw payload and nothing else")
    args = parser.parse_args(argv)

    try:
        cfg = Config.load(Path(args.config))
        qr = cfg.build()
        payload = qr.produce_payload()
    except ValueError as e:
        raise SystemExit(f"Error: {e}") from e

    output_file = args.output or cfg.output_file

    if args.payload_only:
        sys.stdout.write(payload)
    else:
        print(f"Generated {qr}:")
        print(payload, end="")
        print(f"\nPayload Length: {len(payload)} characters")

    if output_file:
        generate_qr_code(payload, output_file)
        if not args.payload_only:
            print(f"\nQR Code saved to: {output_file}")


if __name__ == "__main__":
    main()
