import io
from decimal import Decimal

from reportlab.lib.pagesizes import A5
from reportlab.pdfgen import canvas

MARGIN = 50
LINE_HEIGHT = 14
ROW_HEIGHT = 20
ITEM_X = MARGIN
QTY_X = 230
PRICE_X = 280
BOTTOM_LIMIT = 80


def format_currency(amount):
    """Indonesian Rupiah, e.g. ``Rp 24.000,00``."""
    amount = Decimal(str(amount)).quantize(Decimal("0.01"))
    whole, cents = f"{amount:,.2f}".split(".")
    return f"Rp {whole.replace(',', '.')},{cents}"


def format_date(moment):
    return moment.strftime("%d %B %Y %H:%M") if moment else ""


def _draw_table_header(c, y, width):
    c.setFont("Helvetica-Bold", 10)
    c.drawString(ITEM_X, y, "Menu")
    c.drawString(QTY_X, y, "Qty")
    c.drawString(PRICE_X, y, "Total")
    c.line(MARGIN, y - 6, width - MARGIN, y - 6)
    c.setFont("Helvetica", 10)
    return y - ROW_HEIGHT


def build_receipt_pdf(order):
    """
    Render an order as a paginated A5 receipt and return the PDF bytes.
    The table header is repeated on every page the item list spills onto.
    """
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A5)
    c.setTitle(f"Receipt #{order.id}")
    width, height = A5

    y = height - MARGIN

    c.setFont("Helvetica-Bold", 18)
    c.drawCentredString(width / 2, y, "SCHOOL CANTEEN")
    y -= 20
    c.setFont("Helvetica", 11)
    c.drawCentredString(width / 2, y, "Digital Order Receipt")
    y -= 12
    c.line(MARGIN, y, width - MARGIN, y)
    y -= 20

    student = order.student
    c.setFont("Helvetica", 10)
    info = [
        f"Order ID  : #{order.id}",
        f"Date      : {format_date(order.created_at)}",
        f"Student   : {student.name} ({student.student_number})" if student else "Student   : -",
        f"Stall     : {order.stall.name if order.stall else '-'}",
        f"Status    : {order.status.upper()}",
    ]
    for text in info:
        c.drawString(MARGIN, y, text)
        y -= LINE_HEIGHT
    y -= 10

    y = _draw_table_header(c, y, width)

    for line in order.lines:
        if y < BOTTOM_LIMIT:
            c.showPage()
            y = _draw_table_header(c, height - MARGIN, width)

        name = line.menu_item.name if line.menu_item else f"Menu #{line.menu_item_id}"
        c.drawString(ITEM_X, y, name[:32])
        c.drawString(QTY_X, y, str(line.quantity))
        c.drawString(PRICE_X, y, format_currency(line.subtotal))
        y -= ROW_HEIGHT

    if y < BOTTOM_LIMIT:
        c.showPage()
        y = height - MARGIN

    c.line(MARGIN, y + 10, width - MARGIN, y + 10)
    y -= 6
    c.setFont("Helvetica-Bold", 12)
    c.drawString(ITEM_X, y, "TOTAL")
    c.drawString(PRICE_X, y, format_currency(order.total))

    y -= 40
    if y < MARGIN:
        c.showPage()
        y = height - MARGIN
    c.setFont("Helvetica-Oblique", 9)
    c.drawCentredString(width / 2, y, "Please show this receipt when collecting your order.")
    c.drawCentredString(width / 2, y - 12, "Thank you!")

    c.showPage()
    c.save()
    return buf.getvalue()
