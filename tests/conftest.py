"""
Root-level conftest for all tests.

Modules such as the worker registry build their settings at import time,
so the required infrastructure variables get defaults before any test
module is imported.
"""
import os

for _key, _value in {
    "POSTGRES_USER": "unit_test_user",
    "POSTGRES_HOST": "localhost",
    "POSTGRES_PASSWORD": "unit_test_password",
    "POSTGRES_PORT": "5432",
    "POSTGRES_DB": "unit_test_db",
    "REDIS_HOST": "localhost",
    "REDIS_PORT": "6379",
}.items():
    os.environ.setdefault(_key, _value)
