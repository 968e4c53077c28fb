"""
Tests for the server data access layer.
"""
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import server_payload
from dao.server_dao import ServerDAO, next_version
from utils.exceptions import ServerNotFound, StaleVersionConflict


class TestNextVersion:
    """Version tokens always move forward."""

    def test_uses_clock_when_ahead(self):
        previous = datetime(2026, 1, 1, 12, 0, 0)
        now = previous + timedelta(seconds=5)
        with patch('dao.server_dao.utc_now', return_value=now):
            assert next_version(previous) == now

    def test_advances_past_previous_inside_one_clock_tick(self):
        previous = datetime(2026, 1, 1, 12, 0, 0, 500)
        with patch('dao.server_dao.utc_now', return_value=previous):
            assert next_version(previous) == previous + timedelta(microseconds=1)

    def test_advances_past_previous_when_clock_goes_back(self):
        previous = datetime(2026, 1, 1, 12, 0, 0)
        with patch('dao.server_dao.utc_now', return_value=previous - timedelta(hours=1)):
            assert next_version(previous) > previous


class TestServerDAO:
    """Test storage-level guarantees."""

    def test_create_sets_timestamps(self, db):
        dao = ServerDAO(db)
        server = dao.create(server_payload())
        assert server.id is not None
        assert server.created_at == server.updated_at

    def test_duplicate_ip_rejected_by_constraint(self, db):
        dao = ServerDAO(db)
        dao.create(server_payload())
        with pytest.raises(IntegrityError) as exc_info:
            dao.create(server_payload(name='web-02'))
        assert 'ip_address' in str(exc_info.value.orig)

    def test_duplicate_name_and_provider_rejected_by_constraint(self, db):
        dao = ServerDAO(db)
        dao.create(server_payload())
        with pytest.raises(IntegrityError) as exc_info:
            dao.create(server_payload(ip_address='10.0.0.2'))
        assert 'servers.name, servers.provider' in str(exc_info.value.orig)

    def test_same_name_on_other_provider_allowed(self, db):
        dao = ServerDAO(db)
        dao.create(server_payload())
        other = dao.create(server_payload(ip_address='10.0.0.2', provider='digitalocean'))
        assert other.id is not None

    def test_out_of_bounds_rejected_by_check_constraint(self, db):
        dao = ServerDAO(db)
        with pytest.raises(IntegrityError):
            dao.create(server_payload(cpu_cores=500))
        assert dao.search_servers()[1] == 0

    def test_update_if_version_matches(self, db):
        dao = ServerDAO(db)
        server = dao.create(server_payload())
        version = server.updated_at

        updated = dao.update_if_version_matches(server.id, version, {'status': 'maintenance'})

        assert updated.status == 'maintenance'
        assert updated.updated_at > version

    def test_update_with_old_version_changes_nothing(self, db):
        dao = ServerDAO(db)
        server = dao.create(server_payload())
        old_version = server.updated_at
        dao.update_if_version_matches(server.id, old_version, {'cpu_cores': 8})

        with pytest.raises(StaleVersionConflict):
            dao.update_if_version_matches(server.id, old_version, {'cpu_cores': 16})

        assert dao.get_by_id(server.id).cpu_cores == 8

    def test_update_missing_record(self, db):
        dao = ServerDAO(db)
        with pytest.raises(ServerNotFound):
            dao.update_if_version_matches(999, datetime(2026, 1, 1), {'cpu_cores': 8})

    def test_versions_stay_distinct_inside_one_clock_tick(self, db):
        dao = ServerDAO(db)
        frozen = datetime(2026, 3, 1, 9, 30, 0)
        with patch('dao.server_dao.utc_now', return_value=frozen):
            server = dao.create(server_payload())
            first = dao.update_if_version_matches(server.id, frozen, {'cpu_cores': 8}).updated_at
            second = dao.update_if_version_matches(server.id, first, {'cpu_cores': 16}).updated_at

        assert frozen < first < second
        with pytest.raises(StaleVersionConflict):
            dao.update_if_version_matches(server.id, first, {'cpu_cores': 32})

    def test_delete(self, db):
        dao = ServerDAO(db)
        server = dao.create(server_payload())
        assert dao.delete(server.id) is True
        assert dao.delete(server.id) is False
        assert dao.get_by_id(server.id) is None

    def test_delete_many_counts_existing_only(self, db):
        dao = ServerDAO(db)
        first = dao.create(server_payload())
        second = dao.create(server_payload(name='web-02', ip_address='10.0.0.2'))
        ids = [first.id, second.id, 999]

        assert dao.delete_many(ids) == 2
        assert dao.delete_many(ids) == 0
        assert dao.delete_many([]) == 0

    def test_update_status_many_advances_versions(self, db):
        dao = ServerDAO(db)
        server = dao.create(server_payload())
        before = server.updated_at

        assert dao.update_status_many([server.id, 999], 'inactive') == 1

        reloaded = dao.get_by_id(server.id)
        assert reloaded.status == 'inactive'
        assert reloaded.updated_at > before

    def test_exists_checks_honour_exclude_id(self, db):
        dao = ServerDAO(db)
        server = dao.create(server_payload())

        assert dao.check_ip_exists('192.168.1.100') is True
        assert dao.check_ip_exists('192.168.1.100', exclude_id=server.id) is False
        assert dao.check_name_exists('web-01', 'aws') is True
        assert dao.check_name_exists('web-01', 'aws', exclude_id=server.id) is False
        assert dao.check_name_exists('web-01', 'vultr') is False

    def test_search_filters_and_sort(self, db):
        dao = ServerDAO(db)
        dao.create(server_payload(name='alpha', ip_address='10.0.0.1', cpu_cores=2))
        dao.create(server_payload(name='beta', ip_address='10.0.0.2', provider='vultr', cpu_cores=8))
        dao.create(server_payload(name='gamma', ip_address='172.16.0.3', status='maintenance', cpu_cores=4))

        servers, total = dao.search_servers(keyword='10.0.0', sort='cpu_cores', direction='asc')
        assert total == 2
        assert [s.name for s in servers] == ['alpha', 'beta']

        servers, total = dao.search_servers(provider='vultr')
        assert [s.name for s in servers] == ['beta']

        servers, total = dao.search_servers(status='maintenance')
        assert [s.name for s in servers] == ['gamma']
