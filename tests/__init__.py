"""db-archiver test suite.

FakeDatabase (tests/fakes.py) stands in for the pyodbc connection everywhere
except test_connection.py and test_cli.py, which mock pyodbc itself.
"""
