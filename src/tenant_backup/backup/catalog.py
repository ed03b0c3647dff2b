"""Table catalog of the invoicing application.

Every table that belongs to a company, either directly through its
``company_id`` column or through exactly one parent table.  When a new
company-owned table is added to the application it must be declared here,
and the purge order follows automatically.  Rows owned by a user rather
than the company, such as ANAF token links, are not listed.

Usage:
    from tenant_backup.backup.catalog import INVOICING_SCHEMA

    for table_def in INVOICING_SCHEMA.import_order():
        print(table_def.name)
"""

from tenant_backup.backup.models import BackupSchema, FileSlot, ForeignKey, TableDef

# User identities are not portable across a restore
USER_AUDIT_FIELDS = [
    "created_by_id",
    "updated_by_id",
    "initiated_by_id",
    "user_id",
    "sent_by_id",
]

INVOICE_FILES = [
    FileSlot(
        path_field="xml_path",
        category="invoices",
        archive_name="document.xml",
        storage_template="invoices/{tenant_id}/{id}.xml",
    ),
    FileSlot(
        path_field="pdf_path",
        category="invoices",
        archive_name="document.pdf",
        storage_template="invoices/{tenant_id}/{id}.pdf",
    ),
    FileSlot(
        path_field="signature_path",
        category="invoices",
        archive_name="signature.sig",
        storage_template="signatures/{tenant_id}/{id}.p7s",
    ),
]

ATTACHMENT_FILES = [
    FileSlot(
        path_field="storage_path",
        category="attachments",
        name_field="filename",
        storage_template="attachments/{tenant_id}/{id}/{filename}",
    ),
]


def _ref(table: str, field: str | None = None) -> ForeignKey:
    return ForeignKey(table=table, field=field or f"{table}_id")


def _line_table(name: str, parent: str) -> TableDef:
    return TableDef(
        name=name,
        parent=_ref(parent),
        refs=[_ref("product")],
    )


INVOICING_SCHEMA = BackupSchema(
    user_fields=USER_AUDIT_FIELDS,
    tables=[
        # ── Company-scoped ───────────────────────────────────────────
        TableDef(name="document_series"),
        TableDef(name="bank_account"),
        TableDef(name="vat_rate"),
        TableDef(name="email_template"),
        TableDef(name="product"),
        TableDef(name="client"),
        TableDef(name="supplier"),
        TableDef(
            name="invoice",
            refs=[_ref("client"), _ref("supplier"), _ref("document_series")],
            self_ref="parent_document_id",
            unique_fields=["idempotency_key", "anaf_message_id"],
            soft_delete_field="deleted_at",
            files=INVOICE_FILES,
        ),
        TableDef(
            name="proforma_invoice",
            refs=[
                _ref("client"),
                _ref("document_series"),
                _ref("invoice", "converted_invoice_id"),
            ],
        ),
        TableDef(
            name="recurring_invoice",
            refs=[_ref("client"), _ref("document_series")],
        ),
        TableDef(
            name="delivery_note",
            refs=[
                _ref("client"),
                _ref("document_series"),
                _ref("invoice", "converted_invoice_id"),
            ],
        ),
        TableDef(
            name="receipt",
            refs=[
                _ref("client"),
                _ref("document_series"),
                _ref("invoice", "converted_invoice_id"),
            ],
        ),
        TableDef(
            name="email_log",
            refs=[_ref("invoice"), _ref("delivery_note"), _ref("receipt")],
        ),
        TableDef(name="payment", refs=[_ref("invoice")]),
        TableDef(name="efactura_message", refs=[_ref("invoice")]),
        TableDef(name="import_job"),
        TableDef(
            name="borderou_transaction",
            refs=[
                _ref("import_job"),
                _ref("invoice", "matched_invoice_id"),
                _ref("client", "matched_client_id"),
                _ref("proforma_invoice", "matched_proforma_invoice_id"),
                _ref("payment", "created_payment_id"),
            ],
        ),
        TableDef(name="trial_balance", soft_delete_field="deleted_at"),
        # ── Children (scoped through their parent) ───────────────────
        _line_table("invoice_line", "invoice"),
        TableDef(
            name="invoice_attachment",
            parent=_ref("invoice"),
            binary_fields=["content"],
            files=ATTACHMENT_FILES,
        ),
        TableDef(
            name="invoice_share_token",
            parent=_ref("invoice"),
            refs=[_ref("email_log")],
            token_fields=["token"],
        ),
        TableDef(name="document_event", parent=_ref("invoice")),
        _line_table("proforma_invoice_line", "proforma_invoice"),
        _line_table("recurring_invoice_line", "recurring_invoice"),
        _line_table("delivery_note_line", "delivery_note"),
        _line_table("receipt_line", "receipt"),
        TableDef(name="email_event", parent=_ref("email_log")),
        TableDef(name="trial_balance_row", parent=_ref("trial_balance")),
    ],
)
