"""Tests for the address book and its single-default rule."""

import pytest

from storefront_server.addresses import AddressBook, ensure_single_default
from storefront_server.errors import GatewayError, NotFoundError
from storefront_server.models import Address, AddressInput


def _input(label, is_default=False):
    return AddressInput(label=label, line1=f"{label} street", city="Pune", postal_code="411001", country="IN", is_default=is_default)


def _defaults(book):
    return [addr.label for addr in book.addresses if addr.is_default]


@pytest.fixture
def book(store, gateway):
    address_book = AddressBook(store, gateway)
    address_book.load_guest()
    return address_book


@pytest.fixture
def account_book(run, book, alice):
    run(book.on_login(alice))
    return book


class TestEnsureSingleDefault:
    def test_promotes_first_when_none(self):
        addresses = [Address(**_input("home").model_dump(), id="a1"), Address(**_input("work").model_dump(), id="a2")]

        repaired = ensure_single_default(addresses)

        assert [addr.is_default for addr in repaired] == [True, False]

    def test_keeps_first_of_many(self):
        addresses = [Address(**_input(label, True).model_dump(), id=label) for label in ("a", "b", "c")]

        repaired = ensure_single_default(addresses)

        assert [addr.is_default for addr in repaired] == [True, False, False]

    def test_empty(self):
        assert ensure_single_default([]) == []


class TestGuestAddressBook:
    def test_first_address_becomes_default(self, run, book, store):
        run(book.add(_input("home")))

        assert _defaults(book) == ["home"]
        assert store.load_addresses() == book.addresses

    def test_new_default_moves_flag(self, run, book):
        run(book.add(_input("home")))
        run(book.add(_input("work")))
        run(book.add(_input("cabin", is_default=True)))

        assert _defaults(book) == ["cabin"]
        assert book.default_address.label == "cabin"

    def test_set_default(self, run, book):
        run(book.add(_input("home")))
        run(book.add(_input("work")))
        work = book.addresses[1]

        run(book.set_default(work.id))

        assert _defaults(book) == ["work"]

    def test_set_default_unknown(self, run, book):
        with pytest.raises(NotFoundError):
            run(book.set_default("missing"))

    def test_update_to_default(self, run, book):
        run(book.add(_input("home")))
        run(book.add(_input("work")))
        work = book.addresses[1]

        run(book.update(work.model_copy(update={"is_default": True, "city": "Mumbai"})))

        assert _defaults(book) == ["work"]
        assert book.addresses[1].city == "Mumbai"

    def test_demoting_only_default_is_ignored(self, run, book):
        run(book.add(_input("home")))
        home = book.addresses[0]

        run(book.update(home.model_copy(update={"is_default": False, "label": "flat"})))

        assert _defaults(book) == ["flat"]

    def test_removing_default_promotes_next(self, run, book):
        run(book.add(_input("home")))
        run(book.add(_input("work")))
        run(book.add(_input("cabin")))

        run(book.remove(book.default_address.id))

        assert [addr.label for addr in book.addresses] == ["work", "cabin"]
        assert _defaults(book) == ["work"]

    def test_removing_last_address(self, run, book):
        run(book.add(_input("home")))

        run(book.remove(book.addresses[0].id))

        assert book.addresses == []
        assert book.default_address is None

    def test_update_unknown(self, run, book):
        ghost = Address(**_input("ghost").model_dump(), id="missing")
        with pytest.raises(NotFoundError):
            run(book.update(ghost))

    def test_invariant_holds_over_sequence(self, run, book):
        run(book.add(_input("a")))
        run(book.add(_input("b", is_default=True)))
        run(book.add(_input("c")))
        run(book.set_default(book.addresses[2].id))
        run(book.remove(book.addresses[0].id))
        run(book.update(book.addresses[0].model_copy(update={"is_default": True})))

        assert len(_defaults(book)) == 1

    def test_repairs_stored_book_on_load(self, store, gateway):
        store.save_addresses([Address(**_input(label, True).model_dump(), id=label) for label in ("x", "y")])

        fresh = AddressBook(store, gateway)
        fresh.load_guest()

        assert _defaults(fresh) == ["x"]


class TestAccountAddressBook:
    def test_login_loads_account_addresses(self, run, book, gateway, alice):
        gateway.addresses.append(Address(**_input("office", True).model_dump(), id="acc-1"))

        run(book.on_login(alice))

        assert _defaults(book) == ["office"]

    def test_guest_addresses_stay_local(self, run, book, store, alice):
        run(book.add(_input("home")))

        run(book.on_login(alice))

        assert book.addresses == []
        assert len(store.load_addresses()) == 1

    def test_first_insert_clears_then_inserts_default(self, run, account_book, gateway):
        run(account_book.add(_input("home")))

        assert gateway.address_log == [("clear_default", None), ("insert", True)]
        assert _defaults(account_book) == ["home"]

    def test_non_default_insert_leaves_flags(self, run, account_book, gateway):
        run(account_book.add(_input("home")))
        gateway.address_log.clear()

        run(account_book.add(_input("work")))

        assert gateway.address_log == [("insert", False)]
        assert _defaults(account_book) == ["home"]

    def test_set_default_clears_before_setting(self, run, account_book, gateway):
        run(account_book.add(_input("home")))
        run(account_book.add(_input("work")))
        work_id = account_book.addresses[1].id
        gateway.address_log.clear()

        run(account_book.set_default(work_id))

        assert gateway.address_log == [("clear_default", None), ("set_default", work_id)]
        assert _defaults(account_book) == ["work"]

    def test_update_to_default_clears_others_first(self, run, account_book, gateway):
        run(account_book.add(_input("home")))
        run(account_book.add(_input("work")))
        work = account_book.addresses[1]
        gateway.address_log.clear()

        run(account_book.update(work.model_copy(update={"is_default": True})))

        assert gateway.address_log == [("clear_default", work.id), ("update", work.id, True)]
        assert _defaults(account_book) == ["work"]

    def test_removing_default_promotes_remaining(self, run, account_book, gateway):
        run(account_book.add(_input("home")))
        run(account_book.add(_input("work")))
        home, work = account_book.addresses
        gateway.address_log.clear()

        run(account_book.remove(home.id))

        assert gateway.address_log == [("delete", home.id), ("set_default", work.id)]
        assert _defaults(account_book) == ["work"]

    def test_service_failure_propagates(self, run, account_book, gateway):
        gateway.fail_mutations = True

        with pytest.raises(GatewayError):
            run(account_book.add(_input("home")))

        assert account_book.addresses == []
        assert account_book.last_error is not None

    def test_logout_returns_to_guest_book(self, run, account_book, store):
        run(account_book.add(_input("office")))
        store.save_addresses([Address(**_input("home", True).model_dump(), id="g1")])

        account_book.on_logout()

        assert _defaults(account_book) == ["home"]

    def test_set_default_unknown_keeps_current_default(self, run, account_book, gateway):
        run(account_book.add(_input("home")))
        run(account_book.add(_input("work")))
        gateway.address_log.clear()

        with pytest.raises(NotFoundError):
            run(account_book.set_default("does-not-exist"))

        assert gateway.address_log == []
        assert _defaults(account_book) == ["home"]
        assert [addr.label for addr in gateway.addresses if addr.is_default] == ["home"]

    def test_update_unknown_leaves_defaults(self, run, account_book, gateway):
        run(account_book.add(_input("home")))
        gateway.address_log.clear()
        ghost = Address(**_input("ghost", is_default=True).model_dump(), id="missing")

        with pytest.raises(NotFoundError):
            run(account_book.update(ghost))

        assert gateway.address_log == []
        assert _defaults(account_book) == ["home"]
