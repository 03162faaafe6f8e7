"""
HTTP API Tests

Exercises the blueprints end to end through the Flask test client:
status code mapping, decimal-string JSON and audit attribution from the
X-User-* headers.
"""

from conftest import actor_headers


def test_health(client, db_session):
    response = client.get('/api/health')
    assert response.status_code == 200
    data = response.get_json()
    assert data['status'] == 'healthy'
    assert data['checks']['database']['status'] == 'healthy'
    assert data['timestamp'].endswith('Z')


class TestUnitRoutes:

    def test_list_units_by_type(self, client, units):
        response = client.get('/api/units?type=volume')
        assert response.status_code == 200
        abbreviations = {u['abbreviation'] for u in response.get_json()['items']}
        assert abbreviations == {'L', 'ml', 'cups', 'tbsp', 'tsp'}

    def test_create_unit(self, client, units):
        response = client.post('/api/units', json={
            'name': 'Ounces',
            'abbreviation': 'oz',
            'measurement_type': 'weight',
            'base_unit_name': 'gram',
            'conversion_factor': '28.349523',
        }, headers=actor_headers())
        assert response.status_code == 201
        assert response.get_json()['conversion_factor'] == '28.349523'

        logs = client.get('/api/audit/logs?resource=units').get_json()
        assert logs['total'] == 1
        assert logs['items'][0]['user_email'] == 'baker@bakesewa.com'

    def test_create_unit_rejects_unknown_field(self, client, units):
        response = client.post('/api/units', json={
            'name': 'Ounces', 'abbreviation': 'oz', 'measurement_type': 'weight', 'colour': 'blue',
        })
        assert response.status_code == 400

    def test_create_and_list_conversion(self, client, units):
        response = client.post('/api/units/conversions', json={
            'from_unit_id': units['pkt'], 'to_unit_id': units['kg'], 'conversion_factor': '0.5',
        })
        assert response.status_code == 201

        listed = client.get(f"/api/units/conversions?unit_id={units['kg']}").get_json()['items']
        assert len(listed) == 1
        assert listed[0]['conversion_factor'] == '0.5'

    def test_convert_by_abbreviation(self, client, units):
        response = client.post('/api/units/convert', json={'quantity': '500', 'from': 'g', 'to': 'kg'})
        assert response.status_code == 200
        assert response.get_json()['converted_quantity'] == '0.5'

    def test_convert_across_types_is_unprocessable(self, client, units):
        response = client.post('/api/units/convert', json={
            'quantity': 1, 'from_unit_id': units['kg'], 'to_unit_id': units['L'],
        })
        assert response.status_code == 422
        assert response.get_json()['from_unit_id'] == units['kg']

    def test_convert_unknown_unit(self, client, units):
        response = client.post('/api/units/convert', json={'quantity': 1, 'from': 'stone', 'to': 'kg'})
        assert response.status_code == 400


class TestInventoryRoutes:

    def test_receive_returns_summary(self, client, flour):
        response = client.post(
            f'/api/inventory/{flour.id}/receive',
            json={'quantity': 30, 'unit_cost': '3.00', 'batch_number': 'B-7'},
            headers=actor_headers(),
        )
        assert response.status_code == 201
        data = response.get_json()
        assert data['transaction']['type'] == 'in'
        assert data['transaction']['created_by'] == 'baker@bakesewa.com'
        assert data['summary']['current_stock'] == '80'
        assert data['summary']['cost_per_unit'] == '2.6875'
        assert data['summary']['stock_value'] == '215'

    def test_receive_in_other_unit(self, client, flour, units):
        response = client.post(f'/api/inventory/{flour.id}/receive', json={
            'quantity': '10000', 'unit_cost': '0.0025', 'unit_id': units['g'],
        })
        assert response.status_code == 201
        summary = response.get_json()['summary']
        assert summary['current_stock'] == '60'
        assert summary['cost_per_unit'] == '2.5'

    def test_receive_unconvertible_unit(self, client, flour, units):
        response = client.post(f'/api/inventory/{flour.id}/receive', json={
            'quantity': 2, 'unit_cost': '1', 'unit_id': units['pkt'],
        })
        assert response.status_code == 422
        item = client.get(f'/api/inventory/{flour.id}').get_json()['item']
        assert item['current_stock'] == '50'

    def test_receive_validation(self, client, flour):
        assert client.post(f'/api/inventory/{flour.id}/receive', json={'quantity': 5}).status_code == 400
        assert client.post(
            f'/api/inventory/{flour.id}/receive', json={'quantity': -5, 'unit_cost': 1},
        ).status_code == 400
        assert client.post(
            f'/api/inventory/{flour.id}/receive', json={'quantity': 'lots', 'unit_cost': 1},
        ).status_code == 400

    def test_unknown_item(self, client, db_session):
        response = client.post('/api/inventory/9999/receive', json={'quantity': 1, 'unit_cost': 1})
        assert response.status_code == 404
        assert client.get('/api/inventory/9999').status_code == 404

    def test_consume_more_than_available(self, client, flour):
        response = client.post(f'/api/inventory/{flour.id}/consume', json={'quantity': 500})
        assert response.status_code == 409
        data = response.get_json()
        assert data['available'] == '50'
        assert data['requested'] == '500'

    def test_consume(self, client, flour):
        response = client.post(f'/api/inventory/{flour.id}/consume', json={'quantity': '12.5', 'reason': 'baking'})
        assert response.status_code == 201
        data = response.get_json()
        assert data['transaction']['quantity'] == '-12.5'
        assert data['summary']['current_stock'] == '37.5'
        assert data['summary']['cost_per_unit'] == '2.5'

    def test_adjust(self, client, flour):
        response = client.post(f'/api/inventory/{flour.id}/adjust', json={'counted_quantity': '48'})
        assert response.status_code == 201
        assert response.get_json()['summary']['current_stock'] == '48'

        unchanged = client.post(f'/api/inventory/{flour.id}/adjust', json={'counted_quantity': '48'})
        assert unchanged.status_code == 200
        assert unchanged.get_json()['transaction'] is None

    def test_create_item_and_low_stock(self, client, units):
        response = client.post('/api/inventory', json={
            'name': 'Yeast', 'code': 'YST', 'primary_unit_id': units['kg'],
            'opening_stock': '0.5', 'cost_per_unit': '12', 'min_level': '1',
        }, headers=actor_headers())
        assert response.status_code == 201
        assert response.get_json()['closing_stock'] == '0.5'

        low = client.get('/api/inventory/low-stock').get_json()['items']
        assert [i['code'] for i in low] == ['YST']
        assert client.get('/api/inventory?low_stock=1').get_json()['items'][0]['code'] == 'YST'

    def test_create_item_requires_fields(self, client, units):
        assert client.post('/api/inventory', json={'name': 'Yeast'}).status_code == 400

    def test_transactions_newest_first(self, client, flour):
        client.post(f'/api/inventory/{flour.id}/receive', json={'quantity': 10, 'unit_cost': 3})
        client.post(f'/api/inventory/{flour.id}/consume', json={'quantity': 5})

        items = client.get(f'/api/inventory/{flour.id}/transactions').get_json()['items']
        assert [t['type'] for t in items] == ['out', 'in']
        assert client.get(f'/api/inventory/{flour.id}/transactions?limit=0').status_code == 400


class TestProductRoutes:

    def _create(self, client, flour, units):
        return client.post('/api/products', json={
            'name': 'Croissant',
            'price': '4.00',
            'ingredients': [{'inventory_item_id': flour.id, 'quantity': '100', 'unit_id': units['g']}],
        }, headers=actor_headers())

    def test_create_product_with_recipe(self, client, flour, units):
        response = self._create(client, flour, units)
        assert response.status_code == 201
        data = response.get_json()
        assert data['cost'] == '0.25'
        assert data['margin'] == '0.9375'
        assert len(data['ingredients']) == 1

    def test_cost_breakdown_and_refresh(self, client, flour, units):
        product_id = self._create(client, flour, units).get_json()['id']

        breakdown = client.get(f'/api/products/{product_id}/cost').get_json()
        assert breakdown['total_cost'] == '0.25'
        assert breakdown['ingredients'][0]['converted_quantity'] == '0.1'

        refreshed = client.post(f'/api/products/{product_id}/cost/refresh')
        assert refreshed.status_code == 200
        assert refreshed.get_json()['product']['cost'] == '0.25'

    def test_replace_ingredients(self, client, flour, units):
        product_id = self._create(client, flour, units).get_json()['id']
        response = client.put(f'/api/products/{product_id}/ingredients', json={
            'ingredients': [{'inventory_item_id': flour.id, 'quantity': '1'}],
        })
        assert response.status_code == 200
        assert response.get_json()['breakdown']['total_cost'] == '2.5'

        assert client.put(f'/api/products/{product_id}/ingredients', json={}).status_code == 400

    def test_unknown_product(self, client, db_session):
        assert client.get('/api/products/9999/cost').status_code == 404


class TestAuditRoutes:

    def test_audit_rows_are_attributed_to_headers(self, client, flour):
        client.post(
            f'/api/inventory/{flour.id}/consume',
            json={'quantity': 1},
            headers=actor_headers(user_id='u-42', email='night@bakesewa.com', name='Night Shift'),
        )
        logs = client.get('/api/audit/logs?resource=inventory&action=UPDATE').get_json()
        assert logs['total'] == 1
        entry = logs['items'][0]
        assert entry['user_id'] == 'u-42'
        assert entry['user_name'] == 'Night Shift'
        assert entry['resource_id'] == str(flour.id)

    def test_logs_reject_bad_limit(self, client, db_session):
        assert client.get('/api/audit/logs?limit=0').status_code == 400

    def test_compliance(self, client, db_session):
        response = client.get('/api/audit/compliance')
        assert response.status_code == 200
        assert response.get_json()['overall_compliant'] is True

    def test_login_events_and_lockout(self, client, app, db_session):
        for _ in range(app.config['LOGIN_MAX_FAILED_ATTEMPTS']):
            response = client.post('/api/auth/login-events', json={
                'email': 'owner@bakesewa.com', 'success': False,
            }, environ_base={'REMOTE_ADDR': '203.0.113.9'})
            assert response.status_code == 201

        data = response.get_json()
        assert data['login']['status'] == 'failed'
        assert data['lockout']['locked'] is True

        status = client.get('/api/auth/lockout/owner@bakesewa.com').get_json()
        assert status['failed_attempts'] == app.config['LOGIN_MAX_FAILED_ATTEMPTS']

        security = client.get('/api/audit/security').get_json()
        assert [a['type'] for a in security['new_alerts']] == ['BRUTE_FORCE']
        assert security['failed_logins_24h'] == app.config['LOGIN_MAX_FAILED_ATTEMPTS']

    def test_logout_event(self, client, db_session):
        response = client.post('/api/auth/login-events', json={
            'event': 'logout', 'email': 'baker@bakesewa.com', 'user_id': 'u-1',
        })
        assert response.status_code == 201
        assert response.get_json()['action'] == 'LOGOUT'

        missing = client.post('/api/auth/login-events', json={'event': 'logout', 'email': 'baker@bakesewa.com'})
        assert missing.status_code == 400

    def test_login_event_requires_boolean_success(self, client, db_session):
        response = client.post('/api/auth/login-events', json={'email': 'a@b.c', 'success': 'yes'})
        assert response.status_code == 400
