"""Tests for log template canonicalization and error-topic merging."""

import pytest

from canary_gate.errors import TemplateSyncError
from canary_gate.log_template import (
    DEFAULT_ERROR_TOPICS,
    TOPIC_TYPE_CUSTOM,
    TOPIC_TYPE_DEFAULT,
    merge_error_topics,
    process_yaml_logs,
)


TEMPLATE = """
monitoringProvider: ELASTICSEARCH
accountName: elastic-account
index: kubernetes*
responseKeywords: log,message
scoringAlgorithm: Canary
contextualCluster: true
errorTopics:
  - errorString: FATAL
    topic: critical
  - errorString: WARN
    topic: critical
  - errorString: PaymentDeclined
    topic: error
tags:
  - errorString: Connection refused
    tag: network
"""


class TestMergeErrorTopics:
    def test_default_table_size(self):
        assert len(DEFAULT_ERROR_TOPICS) == 21

    def test_classification(self):
        merged = merge_error_topics(
            [
                {"string": "FATAL", "topic": "critical"},
                {"string": "WARN", "topic": "critical"},
                {"string": "PaymentDeclined", "topic": "error"},
            ],
            DEFAULT_ERROR_TOPICS,
        )
        assert merged[0] == {"string": "FATAL", "topic": "critical", "type": TOPIC_TYPE_DEFAULT}
        assert merged[1] == {"string": "WARN", "topic": "critical", "type": TOPIC_TYPE_CUSTOM}
        assert merged[2] == {"string": "PaymentDeclined", "topic": "error", "type": ""}

    def test_uncovered_defaults_appended(self):
        merged = merge_error_topics([{"string": "FATAL", "topic": "critical"}], DEFAULT_ERROR_TOPICS)
        assert len(merged) == 21
        strings = [item["string"] for item in merged]
        assert strings.count("FATAL") == 1
        assert all(item["type"] == TOPIC_TYPE_DEFAULT for item in merged)

    def test_defaults_disabled(self):
        merged = merge_error_topics(
            [{"string": "ERROR", "topic": "warn"}], DEFAULT_ERROR_TOPICS, disable_defaults=True
        )
        assert merged == [{"string": "ERROR", "topic": "warn", "type": TOPIC_TYPE_CUSTOM}]

    def test_custom_default_table(self):
        merged = merge_error_topics([], (("Boom", "critical"),))
        assert merged == [{"string": "Boom", "topic": "critical", "type": TOPIC_TYPE_DEFAULT}]


class TestProcessYamlLogs:
    def test_canonical_fields(self):
        doc = process_yaml_logs(TEMPLATE, "loggytemplate", "kubernetes.container_name")
        assert doc["templateName"] == "loggytemplate"
        assert doc["filterKey"] == "kubernetes.container_name"
        assert doc["tagEnabled"] is True
        assert doc["monitoringProvider"] == "ELASTICSEARCH"
        assert doc["index"] == "kubernetes*"
        assert doc["contextualCluster"] is True
        assert doc["tags"] == [{"string": "Connection refused", "tag": "network"}]
        assert len(doc["errorTopics"]) == 22

    def test_key_order(self):
        doc = process_yaml_logs(TEMPLATE, "loggytemplate", "kubernetes.container_name")
        assert list(doc) == [
            "templateName",
            "filterKey",
            "tagEnabled",
            "monitoringProvider",
            "accountName",
            "scoringAlgorithm",
            "index",
            "responseKeywords",
            "contextualCluster",
            "tags",
            "errorTopics",
        ]

    def test_no_tags(self):
        doc = process_yaml_logs("monitoringProvider: ELASTICSEARCH\n", "loggytemplate", "app")
        assert doc["tagEnabled"] is False
        assert "tags" not in doc
        assert "index" not in doc
        assert len(doc["errorTopics"]) == len(DEFAULT_ERROR_TOPICS)

    def test_disable_default_topics(self):
        raw = "disableDefaultErrorTopics: true\nerrorTopics:\n  - errorString: Boom\n    topic: error\n"
        doc = process_yaml_logs(raw, "loggytemplate", "app")
        assert doc["errorTopics"] == [{"string": "Boom", "topic": "error", "type": ""}]

    def test_quoted_disable_flag_rejected(self):
        with pytest.raises(TemplateSyncError, match="disableDefaultErrorTopics must be a boolean"):
            process_yaml_logs('disableDefaultErrorTopics: "false"\n', "loggytemplate", "app")

    def test_explicit_false_keeps_defaults(self):
        doc = process_yaml_logs("disableDefaultErrorTopics: false\n", "loggytemplate", "app")
        assert len(doc["errorTopics"]) == len(DEFAULT_ERROR_TOPICS)

    def test_injected_default_table(self):
        doc = process_yaml_logs("accountName: acc\n", "loggytemplate", "app", default_topics=())
        assert doc["errorTopics"] == []

    def test_template_name_overridden(self):
        doc = process_yaml_logs("templateName: stale\n", "loggytemplate", "app")
        assert doc["templateName"] == "loggytemplate"

    def test_bad_error_topics(self):
        with pytest.raises(TemplateSyncError, match="errorTopics must be a list of mappings"):
            process_yaml_logs("errorTopics: FATAL\n", "loggytemplate", "app")

    def test_unparseable_yaml(self):
        with pytest.raises(TemplateSyncError, match="gitops 'loggytemplate' template config map"):
            process_yaml_logs("tags: [unclosed", "loggytemplate", "app")
