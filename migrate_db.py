#!/usr/bin/env python3
"""
Veritabanını güncellemek için migration script'i
Eski ports ve port_allocation_logs tablolarına yeni kolonlar ekler
"""
import sqlite3
import os
import sys

DB_PATH = os.environ.get('PORTS_DB_PATH', 'instance/karyalay_ports.db')

# Eksik kolonlar - (kolon adı, tip)
PORT_COLUMNS = [
    ("server_region", "VARCHAR(50)"),
    ("notes", "TEXT"),
    ("version", "INTEGER NOT NULL DEFAULT 1"),
    ("updated_at", "DATETIME")
]

LOG_COLUMNS = [
    ("plan_id", "INTEGER"),
    ("notes", "TEXT")
]


def _existing_columns(cursor, table):
    cursor.execute(f"PRAGMA table_info({table})")
    return [column[1] for column in cursor.fetchall()]


def _table_exists(cursor, table):
    cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,))
    return cursor.fetchone() is not None


def _add_columns(cursor, table, columns):
    added = []
    if not _table_exists(cursor, table):
        print(f"ℹ️ {table} tablosu yok, atlanıyor")
        return added

    existing_columns = _existing_columns(cursor, table)
    print(f"Mevcut {table} kolonları: {existing_columns}")

    for column_name, column_type in columns:
        if column_name not in existing_columns:
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column_name} {column_type}")
            print(f"✅ {table} tablosuna '{column_name}' kolonu eklendi")
            added.append(f"{table}.{column_name}")
    return added


def _repair_assignments(cursor):
    # Atanmamış portta abonelik veya atama tarihi kalmamalı
    cursor.execute(
        "UPDATE ports SET assigned_subscription_id = NULL, assigned_at = NULL "
        "WHERE status != 'ASSIGNED' "
        "AND (assigned_subscription_id IS NOT NULL OR assigned_at IS NOT NULL)"
    )
    if cursor.rowcount:
        print(f"✅ {cursor.rowcount} port kaydındaki eski atama bilgisi temizlendi")

    # Aboneliği olmayan ASSIGNED port hiçbir aboneliğe bağlanamaz, havuza geri koy
    cursor.execute(
        "UPDATE ports SET status = 'AVAILABLE', assigned_at = NULL "
        "WHERE status = 'ASSIGNED' AND assigned_subscription_id IS NULL"
    )
    if cursor.rowcount:
        print(f"⚠️ Aboneliği olmayan {cursor.rowcount} ASSIGNED port AVAILABLE yapıldı")

    # Atama tarihi eksik ASSIGNED portlar
    cursor.execute(
        "UPDATE ports SET assigned_at = COALESCE(created_at, CURRENT_TIMESTAMP) "
        "WHERE status = 'ASSIGNED' AND assigned_subscription_id IS NOT NULL "
        "AND assigned_at IS NULL"
    )
    if cursor.rowcount:
        print(f"✅ {cursor.rowcount} ASSIGNED port için atama tarihi dolduruldu")


def migrate_database(db_path=DB_PATH):
    """Veritabanında eksik kolonları ekle, eklenen kolonların listesini döndür"""

    if not os.path.exists(db_path):
        print(f"Veritabanı dosyası bulunamadı: {db_path}")
        return []

    conn = sqlite3.connect(db_path)
    cursor = conn.cursor()
    added = []

    try:
        print("Veritabanı migration başlıyor...")

        added += _add_columns(cursor, "ports", PORT_COLUMNS)
        added += _add_columns(cursor, "port_allocation_logs", LOG_COLUMNS)

        # Atama alanları durumla uyumsuz eski kayıtları düzelt
        if _table_exists(cursor, "ports"):
            _repair_assignments(cursor)

        # Değişiklikleri kaydet
        conn.commit()
        print("\n✅ Tüm değişiklikler kaydedildi!")

    except sqlite3.Error as e:
        print(f"❌ Migration sırasında hata: {e}")
        conn.rollback()
        raise
    finally:
        conn.close()
        print("\n🔄 Migration tamamlandı!")

    return added


if __name__ == "__main__":
    migrate_database(sys.argv[1] if len(sys.argv) > 1 else DB_PATH)
