from chainrelay.models.enums import FeePriority, Topic, Transport, TxStatus


class TestTopic:
    def test_member_count(self):
        assert len(Topic) == 4

    def test_values_match_event_names(self):
        assert Topic.BALANCE.value == "balance"
        assert Topic.TRANSACTION.value == "transaction"
        assert Topic.BLOCKS.value == "blocks"
        assert Topic.GAS_PRICE.value == "gasPrice"

    def test_construction_from_value(self):
        assert Topic("gasPrice") is Topic.GAS_PRICE

    def test_str_behaviour(self):
        assert f"subscribe:{Topic.GAS_PRICE}" == "subscribe:gasPrice"


class TestTxStatus:
    def test_values(self):
        assert [s.value for s in TxStatus] == ["pending", "confirmed", "success", "failed"]

    def test_is_str_enum(self):
        assert isinstance(TxStatus.PENDING, str)


class TestFeePriority:
    def test_values(self):
        assert FeePriority("low") is FeePriority.LOW
        assert FeePriority("medium") is FeePriority.MEDIUM
        assert FeePriority("high") is FeePriority.HIGH


class TestTransport:
    def test_values(self):
        assert Transport("gateway") is Transport.GATEWAY
        assert Transport("stdio") is Transport.STDIO
        assert Transport("streamable-http") is Transport.STREAMABLE_HTTP
