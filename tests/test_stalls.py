import pytest

from canteen.models import MenuItem, StaffProfile, Stall
from conftest import make_discount


@pytest.mark.stall
class TestStallCrud:

    def test_create_and_list(self, client, admin_headers):
        response = client.post('/api/stalls', json={'name': 'Bakso Pak Min'}, headers=admin_headers)
        assert response.status_code == 201
        stall_id = response.get_json()['data']['id']

        response = client.get('/api/stalls', headers=admin_headers)
        assert response.status_code == 200
        stalls = response.get_json()['data']
        assert [s['id'] for s in stalls] == [stall_id]
        assert stalls[0]['menu_count'] == 0

    def test_create_requires_name(self, client, admin_headers):
        response = client.post('/api/stalls', json={'name': '   '}, headers=admin_headers)

        assert response.status_code == 400

    def test_staff_cannot_manage_stalls(self, client, staff_headers):
        response = client.post('/api/stalls', json={'name': 'Mine'}, headers=staff_headers)

        assert response.status_code == 403

    def test_get_with_counts(self, client, admin_headers, sample_stall, sample_staff, nasi_goreng, es_teh):
        response = client.get(f'/api/stalls/{sample_stall.id}', headers=admin_headers)

        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['menu_count'] == 2
        assert data['staff'] == ['Budi']

    def test_get_unknown(self, client, admin_headers):
        response = client.get('/api/stalls/999', headers=admin_headers)

        assert response.status_code == 404

    def test_rename(self, client, db_session, admin_headers, sample_stall):
        response = client.put(
            f'/api/stalls/{sample_stall.id}', json={'name': 'Warung Baru'}, headers=admin_headers
        )

        assert response.status_code == 200
        assert db_session.get(Stall, sample_stall.id).name == 'Warung Baru'


@pytest.mark.stall
class TestStallDelete:

    def test_delete_stall_without_orders(self, client, db_session, admin_headers, sample_stall, nasi_goreng):
        make_discount(db_session, 'Promo', 10, [nasi_goreng])
        menu_id = nasi_goreng.id

        response = client.delete(f'/api/stalls/{sample_stall.id}', headers=admin_headers)

        assert response.status_code == 200
        assert db_session.get(Stall, sample_stall.id) is None
        assert db_session.get(MenuItem, menu_id) is None

    def test_delete_stall_with_orders_rejected(
        self, client, db_session, admin_headers, sample_stall, nasi_goreng, student_headers
    ):
        checkout = client.post(
            '/api/orders/checkout',
            json={'stall_id': sample_stall.id, 'items': [{'menu_id': nasi_goreng.id, 'quantity': 1}]},
            headers=student_headers
        )
        assert checkout.status_code == 201

        response = client.delete(f'/api/stalls/{sample_stall.id}', headers=admin_headers)

        assert response.status_code == 409
        assert response.get_json()['details']['order_count'] == 1
        assert db_session.get(Stall, sample_stall.id) is not None

    def test_delete_stall_with_staff_rejected(self, client, admin_headers, sample_stall, sample_staff):
        response = client.delete(f'/api/stalls/{sample_stall.id}', headers=admin_headers)

        assert response.status_code == 409

    def test_delete_stall_with_only_deactivated_staff(self, client, db_session, admin_headers, sample_stall, sample_staff):
        staff_id = sample_staff.id
        assert client.delete(f'/api/staff/{staff_id}', headers=admin_headers).status_code == 200

        listed = client.get(f'/api/stalls/{sample_stall.id}', headers=admin_headers)
        assert listed.get_json()['data']['staff_count'] == 0

        response = client.delete(f'/api/stalls/{sample_stall.id}', headers=admin_headers)

        assert response.status_code == 200
        assert db_session.get(Stall, sample_stall.id) is None
        assert db_session.get(StaffProfile, staff_id).stall_id is None

        staff_list = client.get('/api/staff', headers=admin_headers).get_json()['data']
        assert staff_list[0]['stall_name'] is None

    def test_delete_unknown(self, client, admin_headers):
        response = client.delete('/api/stalls/999', headers=admin_headers)

        assert response.status_code == 404
