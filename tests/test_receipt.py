from decimal import Decimal

import pytest
from reportlab.pdfgen.canvas import Canvas

from canteen.services import orders as order_service
from canteen.services.receipt import build_receipt_pdf, format_currency
from conftest import make_menu_item


@pytest.fixture
def order_id(client, student_headers, sample_stall, nasi_goreng):
    response = client.post(
        '/api/orders/checkout',
        json={'stall_id': sample_stall.id, 'items': [{'menu_id': nasi_goreng.id, 'quantity': 3}]},
        headers=student_headers
    )
    assert response.status_code == 201
    return response.get_json()['data']['order_id']


@pytest.mark.receipt
class TestReceiptRendering:

    def test_format_currency(self):
        assert format_currency(24000) == 'Rp 24.000,00'
        assert format_currency(Decimal('1234567.5')) == 'Rp 1.234.567,50'
        assert format_currency(0) == 'Rp 0,00'

    def test_build_pdf(self, db_session, order_id):
        order = order_service.get_order(db_session, order_id)

        pdf = build_receipt_pdf(order)

        assert pdf.startswith(b'%PDF')
        assert b'%%EOF' in pdf[-32:]

    def test_total_matches_order_total(self, monkeypatch, db_session, sample_student, sample_stall, nasi_goreng, es_teh):
        drawn = []
        original = Canvas.drawString

        def recording_draw(self, x, y, text, *args, **kwargs):
            drawn.append(text)
            return original(self, x, y, text, *args, **kwargs)

        monkeypatch.setattr(Canvas, 'drawString', recording_draw)

        result = order_service.create_order(
            db_session, sample_student.id, sample_stall.id,
            [{'menu_id': nasi_goreng.id, 'quantity': 3}, {'menu_id': es_teh.id, 'quantity': 1}],
        )
        order = order_service.get_order(db_session, result['order_id'])

        build_receipt_pdf(order)

        assert order.total == 33000
        assert format_currency(order.total) in drawn
        assert drawn[drawn.index('TOTAL') + 1] == 'Rp 33.000,00'
        assert 'Rp 30.000,00' in drawn

    def test_long_order_spills_onto_more_pages(self, db_session, sample_student, sample_stall):
        items = [
            make_menu_item(db_session, sample_stall, f'Menu {n}', 1000 + n)
            for n in range(40)
        ]
        result = order_service.create_order(
            db_session, sample_student.id, sample_stall.id,
            [{'menu_id': m.id, 'quantity': 1} for m in items],
        )
        order = order_service.get_order(db_session, result['order_id'])
        assert len(order.lines) == 40

        pdf = build_receipt_pdf(order)

        assert pdf.startswith(b'%PDF')


@pytest.mark.receipt
class TestReceiptDownload:

    def test_owner_downloads(self, client, student_headers, order_id):
        response = client.get(f'/api/orders/{order_id}/receipt', headers=student_headers)

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')
        disposition = response.headers['Content-Disposition']
        assert 'attachment' in disposition
        assert f'receipt-{order_id}-2024001.pdf' in disposition

    def test_other_student_forbidden(self, client, other_student_headers, order_id):
        response = client.get(f'/api/orders/{order_id}/receipt', headers=other_student_headers)

        assert response.status_code == 403

    def test_missing_order(self, client, student_headers):
        response = client.get('/api/orders/999/receipt', headers=student_headers)

        assert response.status_code == 404

    def test_staff_cannot_download(self, client, staff_headers, order_id):
        response = client.get(f'/api/orders/{order_id}/receipt', headers=staff_headers)

        assert response.status_code == 403
