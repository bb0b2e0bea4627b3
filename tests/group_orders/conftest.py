import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def group_orders_bed():
    from group_orders.domain import group_orders

    bed = DomainFixture(group_orders)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(group_orders_bed):
    with group_orders_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def run_around_tests(_ctx):
    """Cleanup infrastructure and adapter singletons after every test"""
    from group_orders.gateway import reset_gateway
    from group_orders.persistence import reset_store

    reset_gateway()
    reset_store()

    yield

    from protean import current_domain

    # Clear all databases
    for _, provider in current_domain.providers.items():
        provider._data_reset()

    reset_gateway()
    reset_store()
