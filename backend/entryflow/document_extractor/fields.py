"""
Per-document-type field whitelists and vision-prompt instructions.

The whitelist is a closed set: nothing outside it is ever extracted, stored
or displayed for a document of that type. The order is the display
order of a document tab.
"""

from entryflow.models.document import DocumentType

FIELD_WHITELIST: dict[DocumentType, tuple[str, ...]] = {
    DocumentType.GD: (
        "declarant_name",
        "consignee",
        "hs_code",
        "declared_value",
        "gross_weight",
        "country_of_origin",
    ),
    DocumentType.INVOICE: (
        "invoice_number",
        "invoice_date",
        "description_of_goods",
        "unit_price",
        "total_value",
    ),
    DocumentType.PACKING_LIST: (
        "number_of_packages",
        "net_weight",
        "gross_weight",
    ),
    DocumentType.AWB: (
        "awb_number",
        "shipper",
        "consignee",
        "gross_weight",
    ),
}

# Fields whose values are amounts, weights or counts
NUMERIC_FIELDS: frozenset[str] = frozenset({
    "declared_value",
    "gross_weight",
    "net_weight",
    "unit_price",
    "total_value",
    "number_of_packages",
})

DOCUMENT_TYPE_NAMES: dict[DocumentType, str] = {
    DocumentType.GD: "Goods Declaration (SAD/Customs Declaration)",
    DocumentType.INVOICE: "Commercial Invoice",
    DocumentType.PACKING_LIST: "Packing List",
    DocumentType.AWB: "Air Waybill / Airway Bill",
}

FIELD_INSTRUCTIONS: dict[DocumentType, str] = {
    DocumentType.GD: """
- declarant_name: Find "Declarant", "Exporter", "Broker", or company name at top
- consignee: Find "Consignee", "Importer", "Buyer"
- hs_code: Find 8-10 digit number near "HS Code", "Tariff Code", "Classification"
- declared_value: Find "Declared Value", "FOB Value", "Customs Value" (extract number only)
- gross_weight: Find "Gross Weight", "Total Weight" (extract number only, remove "kg")
- country_of_origin: Find "Country of Origin", "Origin", "Made in" (extract country code or name)""",
    DocumentType.INVOICE: """
- invoice_number: Find "Invoice No", "Invoice Number", "Commercial Invoice #"
- invoice_date: Find "Invoice Date", "Date" (convert to YYYY-MM-DD format)
- description_of_goods: Find "Description", "Goods", "Product Description"
- unit_price: Find "Unit Price", "Price per Unit" (extract number only)
- total_value: Find "Total", "Invoice Total", "Grand Total", "Amount" (extract number only)""",
    DocumentType.PACKING_LIST: """
- number_of_packages: Find "No. of Packages", "Total Packages", "Cartons", "Boxes", "Pkgs" (extract number only)
- net_weight: Find "Net Weight", "N.W." (extract number only, remove "kg")
- gross_weight: Find "Gross Weight", "G.W.", "Total Weight" (extract number only, remove "kg")
IMPORTANT: Packing lists often have these in tables or at the bottom. Scan carefully!""",
    DocumentType.AWB: """
- awb_number: Find "AWB No", "Air Waybill Number", "MAWB", "Master Airway Bill" (usually 11-12 digits or format like "123-12345678")
- shipper: Find "Shipper", "From", "Consignor" (company name)
- consignee: Find "Consignee", "To", "Receiver" (company name)
- gross_weight: Find "Gross Weight", "Weight", "Chargeable Weight" (extract number only, remove "kg")
IMPORTANT: AWB numbers are usually at the top. Shipper/Consignee are in address blocks.""",
}


def whitelist_for(document_type: DocumentType | str) -> tuple[str, ...]:
    return FIELD_WHITELIST[DocumentType(document_type)]


def is_allowed(document_type: DocumentType | str, field_name: str) -> bool:
    return field_name in whitelist_for(document_type)
