"""Terminal rendering of the WhatsApp pairing QR code."""

import sys
from typing import Optional, TextIO

import qrcode

_BANNER = "=" * 50


def render_qr(payload: str, out: Optional[TextIO] = None) -> None:
    """Draw ``payload`` as a scannable ASCII QR code on ``out`` (stdout)."""
    out = out or sys.stdout
    qr = qrcode.QRCode(border=1)
    qr.add_data(payload)
    qr.make(fit=True)

    out.write(f"\n{_BANNER}\n")
    out.write("Scan this QR code with WhatsApp\n")
    out.write("(Settings > Linked Devices > Link a Device)\n")
    out.write(f"{_BANNER}\n")
    qr.print_ascii(out=out, invert=True)
    out.write("\n")
    out.flush()
