"""Tests for entity extraction from tool results."""

import json

from memory.entity_extractor import (
    extract_entities,
    extract_result_ids,
    find_json_fragment,
    parse_payload,
    summarize_tool_result,
)


class TestJsonParsing:
    """Test JSON payload discovery."""

    def test_fragment_inside_prose(self):
        """The first balanced object is found inside surrounding text."""
        text = 'Found exact match:\n{"id": 1, "name": "A {curly} name"} and more'

        assert find_json_fragment(text) == '{"id": 1, "name": "A {curly} name"}'

    def test_array_before_object(self):
        """Whichever bracket comes first starts the fragment."""
        assert find_json_fragment('x [{"id": 1}] y') == '[{"id": 1}]'

    def test_no_fragment(self):
        """Plain text and unbalanced text have no fragment."""
        assert find_json_fragment("nothing here") is None
        assert find_json_fragment('{"id": 1') is None

    def test_parse_payload_fallbacks(self):
        """Whole-text JSON first, embedded fragment second, None otherwise."""
        assert parse_payload('{"a": 1}') == {"a": 1}
        assert parse_payload('result: {"a": 2}') == {"a": 2}
        assert parse_payload("plain") is None
        assert parse_payload("") is None


class TestEntityExtraction:
    """Test the extraction strategy chain."""

    def test_customer_from_wrapped_result(self):
        """A result-wrapped customer list binds the last customer."""
        text = json.dumps({"result": [
            {"id": 1, "name": "First Co"},
            {"id": 2, "name": "Second Co", "customer_name": "ignored"},
        ]})

        update = extract_entities("searchCustomerList", text)

        assert update.customer_id == "2"
        assert update.customer_name == "Second Co"
        assert update.product_id is None

    def test_customer_id_fallback_field(self):
        """customer_id is used when id is missing."""
        update = extract_entities("findCustomerByName", '{"customer_id": 9, "name": "Nine"}')

        assert update.customer_id == "9"
        assert update.customer_name == "Nine"

    def test_null_fields_fall_back(self):
        """Null id and name fall back to the domain-specific fields."""
        update = extract_entities(
            "findCustomerByName", '{"id": null, "customer_id": 11, "name": null, "customer_name": "Eleven"}'
        )
        product = extract_entities("getProductDetails", '{"id": null, "product_id": "P-9", "product_name": "Bolt"}')

        assert update.customer_id == "11"
        assert update.customer_name == "Eleven"
        assert product.product_id == "P-9"
        assert product.product_name == "Bolt"

    def test_product_result(self):
        """Product tools bind the product slot."""
        update = extract_entities("getProductDetails", '{"id": "P-1", "product_name": "Widget"}')

        assert update.product_id == "P-1"
        assert update.product_name == "Widget"
        assert update.customer_id is None

    def test_text_fallback(self):
        """Free-text customer results fall back to pattern extraction."""
        update = extract_entities("findCustomerByName", "Customer found: Jane Doe. Customer ID: 600005804")

        assert update.customer_id == "600005804"
        assert update.customer_name == "Jane Doe"

    def test_unrelated_tools_bind_nothing(self):
        """Tools outside the customer and product domains never bind entities."""
        assert extract_entities("searchInvoiceList", '{"id": 5, "name": "INV-5"}') is None
        assert extract_entities("date-utility", "2024-01-01") is None

    def test_bad_input_never_raises(self):
        """Garbage input yields None."""
        assert extract_entities("findCustomerByName", "") is None
        assert extract_entities("findCustomerByName", "{{{[[[") is None
        assert extract_entities("getProductDetails", "[]") is None


class TestResultDigest:
    """Test tool result summaries and id lists."""

    def test_list_summary(self):
        """Lists report their length with a noun from the tool name."""
        text = json.dumps({"result": [{"id": 1}, {"id": 2}, {"id": 3}]})

        assert summarize_tool_result("searchCustomerList", text) == "Found 3 customer(s)"
        assert summarize_tool_result("searchEstimateList", text) == "Found 3 estimate(s)"
        assert summarize_tool_result("lookupThings", text) == "Found 3 result(s)"

    def test_object_summary(self):
        """Objects report their name, or a generic hit."""
        assert summarize_tool_result("getProductDetails", '{"name": "Widget"}') == "Found: Widget"
        assert summarize_tool_result("getProductDetails", '{"sku": "W1"}') == "Found 1 result"

    def test_text_summary(self):
        """Non-JSON results and empty results."""
        assert summarize_tool_result("date-utility", "Monday") == "Result processed"
        assert summarize_tool_result("date-utility", "") == ""

    def test_result_ids_are_capped(self):
        """At most five ids are kept."""
        text = json.dumps([{"id": i} for i in range(10)])

        assert extract_result_ids(text) == ["0", "1", "2", "3", "4"]
        assert extract_result_ids("no ids") == []
