"""Tests for client registration, edits and credit bookkeeping."""
import sys
import os
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loandesk.database import DatabaseManager
from loandesk.data_structures import ClientExtras, ClientReference
from loandesk.exceptions import ClientNotFoundError, ValidationError
from loandesk.services.client_service import ClientService, client_documents, pack_address, unpack_address
from loandesk.services.loan_service import LoanService

VALID = {
    'full_name': "maria da silva",
    'cpf': "12345678901",
    'phone': "11987654321",
    'address': "Rua das Flores, 10",
}


class TestClientValidation(unittest.TestCase):

    def assertFieldError(self, field, **overrides):
        data = dict(VALID, **overrides)
        with self.assertRaises(ValidationError) as context:
            ClientService.validate(**data)
        self.assertEqual(context.exception.field, field)

    def test_valid_data_passes(self):
        ClientService.validate(**VALID)

    def test_name_required(self):
        self.assertFieldError('full_name', full_name="   ")

    def test_name_too_long(self):
        self.assertFieldError('full_name', full_name="a" * 101)

    def test_cpf_digits(self):
        self.assertFieldError('cpf', cpf="123.456.789")

    def test_phone_digits(self):
        self.assertFieldError('phone', phone="119876543")

    def test_landline_phone_accepted(self):
        ClientService.validate(**dict(VALID, phone="(11) 3333-4444"))

    def test_address_required(self):
        self.assertFieldError('address', address="")

    def test_email_format(self):
        self.assertFieldError('email', email="not-an-email")
        ClientService.validate(**dict(VALID, email="maria@example.com"))

    def test_credit_limit_range(self):
        self.assertFieldError('credit_limit', credit_limit=50)
        self.assertFieldError('credit_limit', credit_limit=60000)
        self.assertFieldError('credit_limit', credit_limit="lots")


class TestAddressPacking(unittest.TestCase):

    def test_bare_address_when_no_extras(self):
        self.assertEqual(pack_address("Rua A", ClientExtras()), "Rua A")
        self.assertEqual(pack_address(" Rua A ", None), "Rua A")

    def test_round_trip_with_extras(self):
        extras = ClientExtras(residence_proof_url="/tmp/proof.pdf",
                              references=[ClientReference("Ana", "(11) 99999-8888", "Sister")])
        address, unpacked = unpack_address(pack_address("Rua A", extras))
        self.assertEqual(address, "Rua A")
        self.assertEqual(unpacked.residence_proof_url, "/tmp/proof.pdf")
        self.assertEqual(unpacked.references[0].name, "Ana")

    def test_unreadable_extras_kept_as_address(self):
        stored = "Rua A || not json"
        address, extras = unpack_address(stored)
        self.assertEqual(address, stored)
        self.assertTrue(extras.is_empty())

    def test_empty(self):
        address, extras = unpack_address(None)
        self.assertEqual(address, "")
        self.assertTrue(extras.is_empty())


class TestClientService(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.service = ClientService(self.db)

    def tearDown(self):
        self.db.close()

    def test_create_client_normalizes_fields(self):
        client_id = self.service.create_client(**VALID)
        client = self.service.get_client(client_id)

        self.assertEqual(client['full_name'], "Maria da Silva")
        self.assertEqual(client['cpf'], "123.456.789-01")
        self.assertEqual(client['phone'], "(11) 98765-4321")
        self.assertEqual(client['address'], "Rua das Flores, 10")
        self.assertEqual(client['credit_limit'], 1000)
        self.assertEqual(client['available_credit'], 1000)
        self.assertTrue(client['is_first_loan'])

    def test_create_client_with_references_and_extras(self):
        client_id = self.service.create_client(
            **VALID,
            residence_proof_url="/files/proof.pdf",
            references=[
                {'name': "Ana", 'phone': "11999998888", 'relationship': "Sister"},
                {'name': "", 'phone': "123"},
            ],
        )
        client = self.service.get_client(client_id)

        self.assertEqual(client['address'], "Rua das Flores, 10")
        self.assertEqual(client['residence_proof_url'], "/files/proof.pdf")
        self.assertEqual(len(client['references']), 1)
        self.assertEqual(client['references'][0].phone, "(11) 99999-8888")

    def test_invalid_client_not_stored(self):
        with self.assertRaises(ValidationError):
            self.service.create_client(**dict(VALID, cpf="1"))
        self.assertEqual(self.service.list_clients(), [])

    def test_get_missing_client(self):
        with self.assertRaises(ClientNotFoundError):
            self.service.get_client(999)

    def test_cpf_in_use(self):
        client_id = self.service.create_client(**VALID)
        self.assertTrue(self.service.cpf_in_use("123.456.789-01"))
        self.assertTrue(self.service.cpf_in_use("12345678901"))
        self.assertFalse(self.service.cpf_in_use("12345678901", exclude_id=client_id))
        self.assertFalse(self.service.cpf_in_use("98765432100"))

    def test_list_clients_sorted_and_searchable(self):
        self.service.create_client(**dict(VALID, full_name="zeca pagodinho", cpf="11111111111"))
        self.service.create_client(**dict(VALID, full_name="ana lima", cpf="22222222222", phone="21912345678"))

        names = [c['full_name'] for c in self.service.list_clients()]
        self.assertEqual(names, ["Ana Lima", "Zeca Pagodinho"])

        found = self.service.list_clients(search="(21)")
        self.assertEqual([c['full_name'] for c in found], ["Ana Lima"])

        by_cpf = self.service.list_clients(search="22222222222")
        self.assertEqual([c['full_name'] for c in by_cpf], ["Ana Lima"])
        by_phone = self.service.list_clients(search="912345678")
        self.assertEqual([c['full_name'] for c in by_phone], ["Ana Lima"])
        self.assertEqual(self.service.list_clients(search="33333"), [])

    def test_client_documents_lists_files_on_record(self):
        client_id = self.service.create_client(**dict(VALID, photo_url="/files/photo.png",
                                                      residence_proof_url="/files/proof.pdf"))
        documents = client_documents(self.service.get_client(client_id))
        self.assertEqual(documents, [
            ('photo_url', "Photo", "/files/photo.png"),
            ('residence_proof_url', "Proof of residence", "/files/proof.pdf"),
        ])

    def test_raising_limit_shifts_available_credit(self):
        client_id = self.service.create_client(**VALID)
        LoanService(self.db).create_loan(client_id, 400, 4, loan_date="2025-01-06")

        self.service.update_client(client_id, **dict(VALID, credit_limit=1500))
        client = self.db.get_client(client_id)
        self.assertEqual(client['credit_limit'], 1500)
        self.assertEqual(client['available_credit'], 1100)

    def test_lowering_limit_never_goes_negative(self):
        client_id = self.service.create_client(**VALID)
        LoanService(self.db).create_loan(client_id, 400, 4, loan_date="2025-01-06")

        self.service.update_client(client_id, **dict(VALID, credit_limit=200))
        self.assertEqual(self.db.get_client(client_id)['available_credit'], 0)

    def test_update_keeps_limit_when_not_given(self):
        client_id = self.service.create_client(**dict(VALID, credit_limit=2000))
        self.service.update_client(client_id, **dict(VALID, full_name="maria souza"))
        client = self.db.get_client(client_id)
        self.assertEqual(client['full_name'], "Maria Souza")
        self.assertEqual(client['credit_limit'], 2000)

    def test_delete_client_cascades(self):
        client_id = self.service.create_client(**VALID)
        LoanService(self.db).create_loan(client_id, 400, 4, loan_date="2025-01-06")

        self.service.delete_client(client_id)
        self.assertIsNone(self.db.get_client(client_id))
        self.assertEqual(self.db.get_loans(), [])

    def test_delete_missing_client(self):
        with self.assertRaises(ClientNotFoundError):
            self.service.delete_client(42)

    def test_actions_are_logged(self):
        client_id = self.service.create_client(**VALID)
        self.service.delete_client(client_id)
        actions = [entry['action'] for entry in self.service.activity.get_logs()]
        self.assertIn("Create client", actions)
        self.assertIn("Delete client", actions)


if __name__ == "__main__":
    unittest.main(verbosity=2)
