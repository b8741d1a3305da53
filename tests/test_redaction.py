import pytest

from webvisor.privacy.fingerprint import derive_fingerprint
from webvisor.privacy.redaction import MASK_MAX_LEN, RedactionPolicy, mask_value
from webvisor.recorder.config import PrivacyConfig
from webvisor.recorder.dom import Document


@pytest.fixture
def doc():
    return Document()


class TestMaskValue:
    @pytest.mark.parametrize("value,expected", [
        ("", ""),
        (None, ""),
        ("abc", "***"),
        ("x" * 40, "*" * MASK_MAX_LEN),
    ])
    def test_length_is_bounded(self, value, expected):
        assert mask_value(value) == expected

    def test_masking_twice_changes_nothing(self):
        once = mask_value("hunter2")
        assert mask_value(once) == once


class TestShouldMask:
    def test_sensitive_types(self, doc, policy):
        for input_type in ("password", "email", "tel"):
            assert policy.should_mask(doc.create_element("input", {"type": input_type}))

    def test_sensitive_names(self, doc, policy):
        assert policy.should_mask(doc.create_element("input", {"name": "card_number"}))
        assert policy.should_mask(doc.create_element("input", {"id": "user-SSN"}))
        assert policy.should_mask(doc.create_element("textarea", {"placeholder": "Your API token"}))

    def test_autocomplete_hint(self, doc, policy):
        assert policy.should_mask(doc.create_element("input", {"autocomplete": "cc-number"}))

    def test_plain_fields_pass_through(self, doc, policy):
        field = doc.create_element("input", {"name": "nickname"})
        assert not policy.should_mask(field)
        assert policy.redact(field, "bob") == ("bob", False)

    def test_mask_attribute_always_wins(self, doc):
        policy = RedactionPolicy(mask_sensitive_inputs=False)
        assert policy.should_mask(doc.create_element("input", {"data-ym-mask": ""}))
        assert not policy.should_mask(doc.create_element("input", {"type": "password"}))

    def test_mask_all(self, doc):
        policy = RedactionPolicy(mask_all_inputs=True)
        assert policy.redact(doc.create_element("input"), "hello") == ("*****", True)

    def test_from_config_reads_camel_case_options(self, doc):
        config = PrivacyConfig.model_validate({"maskAllInputs": True, "excludePages": ["/admin"]})
        policy = RedactionPolicy.from_config(config)
        assert policy.mask_all_inputs
        assert policy.is_page_excluded("https://shop.example/admin/users")


class TestExclusion:
    def test_descendants_and_their_text_are_excluded(self, doc, policy):
        zone = doc.create_element("div", {"data-ym-disable": ""})
        para = doc.create_element("p", {}, "private")
        zone.append_child(para)
        doc.body.append_child(zone)
        assert policy.is_excluded(zone)
        assert policy.is_excluded(para)
        assert policy.is_excluded(para.child_nodes[0])
        assert not policy.is_excluded(doc.body)

    def test_custom_exclude_attribute(self, doc):
        policy = RedactionPolicy(exclude_attribute="data-private")
        assert policy.is_excluded(doc.create_element("div", {"data-private": "1"}))
        assert not policy.is_excluded(doc.create_element("div", {"data-ym-disable": ""}))

    def test_page_patterns_are_searched_not_anchored(self):
        policy = RedactionPolicy(exclude_pages=[r"/checkout/\d+"])
        assert policy.is_page_excluded("https://shop.example/checkout/42?step=2")
        assert not policy.is_page_excluded("https://shop.example/checkout/")


class TestFingerprint:
    META = {"screen": {"width": 1920, "height": 1080}, "timezone": "Europe/Moscow", "fingerprint": "abc"}

    def test_shape_and_determinism(self):
        fp = derive_fingerprint(self.META, "10.0.0.1")
        assert fp.startswith("fp_") and len(fp) == 19
        assert fp == derive_fingerprint(dict(self.META), "10.0.0.1")

    def test_missing_address_counts_as_unknown(self):
        assert derive_fingerprint(self.META) == derive_fingerprint(self.META, "unknown")

    def test_address_changes_the_visitor(self):
        assert derive_fingerprint(self.META, "10.0.0.1") != derive_fingerprint(self.META, "10.0.0.2")
