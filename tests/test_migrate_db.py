import sqlite3

import pytest

from migrate_db import migrate_database


@pytest.fixture
def legacy_db(tmp_path):
    """Eski şemayla oluşturulmuş veritabanı"""
    path = tmp_path / 'legacy.db'
    conn = sqlite3.connect(path)
    conn.executescript("""
        CREATE TABLE ports (
            id VARCHAR(36) PRIMARY KEY,
            instance_url VARCHAR(255) NOT NULL UNIQUE,
            db_host VARCHAR(255),
            db_name VARCHAR(100),
            status VARCHAR(20) NOT NULL,
            assigned_subscription_id INTEGER,
            assigned_at DATETIME,
            created_at DATETIME
        );
        CREATE TABLE port_allocation_logs (
            id INTEGER PRIMARY KEY,
            timestamp DATETIME NOT NULL,
            action VARCHAR(30) NOT NULL,
            port_id VARCHAR(36) NOT NULL,
            customer_id INTEGER,
            subscription_id INTEGER,
            performed_by INTEGER
        );
        INSERT INTO ports (id, instance_url, status, assigned_subscription_id, assigned_at)
        VALUES ('p1', 'https://a.test', 'ASSIGNED', 7, '2024-01-01 10:00:00'),
               ('p2', 'https://b.test', 'AVAILABLE', 8, '2024-01-01 10:00:00'),
               ('p3', 'https://c.test', 'RESERVED', NULL, '2024-01-02 10:00:00'),
               ('p4', 'https://d.test', 'ASSIGNED', NULL, '2024-01-03 10:00:00');
        INSERT INTO ports (id, instance_url, status, assigned_subscription_id, created_at)
        VALUES ('p5', 'https://e.test', 'ASSIGNED', 9, '2023-05-05 08:00:00');
    """)
    conn.commit()
    conn.close()
    return path


def _columns(path, table):
    conn = sqlite3.connect(path)
    try:
        return [row[1] for row in conn.execute(f'PRAGMA table_info({table})')]
    finally:
        conn.close()


def test_adds_missing_columns(legacy_db):
    added = migrate_database(str(legacy_db))

    assert added == ['ports.server_region', 'ports.notes', 'ports.version', 'ports.updated_at',
                     'port_allocation_logs.plan_id', 'port_allocation_logs.notes']
    assert 'version' in _columns(legacy_db, 'ports')
    assert 'plan_id' in _columns(legacy_db, 'port_allocation_logs')


def test_existing_rows_start_at_version_one(legacy_db):
    migrate_database(str(legacy_db))

    conn = sqlite3.connect(legacy_db)
    try:
        rows = dict(conn.execute('SELECT id, version FROM ports').fetchall())
    finally:
        conn.close()
    assert set(rows.values()) == {1}
    assert len(rows) == 5


def test_clears_stale_assignments(legacy_db):
    migrate_database(str(legacy_db))

    conn = sqlite3.connect(legacy_db)
    try:
        rows = {row[0]: row[1:] for row in conn.execute(
            'SELECT id, status, assigned_subscription_id, assigned_at FROM ports')}
    finally:
        conn.close()
    assert rows['p1'] == ('ASSIGNED', 7, '2024-01-01 10:00:00')
    assert rows['p2'] == ('AVAILABLE', None, None)
    assert rows['p3'] == ('RESERVED', None, None)
    assert rows['p4'] == ('AVAILABLE', None, None)
    assert rows['p5'] == ('ASSIGNED', 9, '2023-05-05 08:00:00')

    for status, subscription_id, assigned_at in rows.values():
        assigned = status == 'ASSIGNED'
        assert assigned == (subscription_id is not None) == (assigned_at is not None)


def test_second_run_is_noop(legacy_db):
    migrate_database(str(legacy_db))
    assert migrate_database(str(legacy_db)) == []


def test_missing_database(tmp_path):
    assert migrate_database(str(tmp_path / 'yok.db')) == []
