pytest_plugins = ["revhub.testing.conftest"]
