from delivery.realtime.bus import FanoutBus, get_bus, reset_bus


class TestFanout:
    def test_broadcast_reaches_everyone_except_excluded(self, recorder):
        bus = FanoutBus()
        a, b = recorder(), recorder()
        bus.register_client("c1", "cust-1", a)
        bus.register_client("c2", "cust-2", b)

        assert bus.broadcast("ping", {"n": 1}, exclude="cust-2") == 1
        assert a.events == ["ping"]
        assert b.events == []

    def test_broadcast_exclusion_covers_every_device_of_the_subscriber(self, recorder):
        bus = FanoutBus()
        phone, laptop, other = recorder(), recorder(), recorder()
        bus.register_client("c1", "user-1", phone)
        bus.register_client("c2", "user-1", laptop)
        bus.register_client("c3", "user-2", other)

        assert bus.broadcast("x", {}, exclude="user-1") == 1
        assert phone.messages == []
        assert laptop.messages == []
        assert other.events == ["x"]

    def test_anonymous_connections_still_receive_broadcasts(self, recorder):
        bus = FanoutBus()
        anonymous = recorder()
        bus.register_client("c1", None, anonymous)

        assert bus.broadcast("x", {}, exclude="user-1") == 1
        assert anonymous.events == ["x"]

    def test_message_wraps_data_with_timestamp(self, recorder):
        bus = FanoutBus()
        client = recorder()
        bus.register_client("c1", "cust-1", client)
        bus.broadcast("ping", {"n": 1})
        _, message = client.messages[0]
        assert message["data"] == {"n": 1}
        assert "timestamp" in message

    def test_user_targeting_covers_all_their_connections(self, recorder):
        bus = FanoutBus()
        phone, laptop, other = recorder(), recorder(), recorder()
        bus.register_client("c1", "cust-1", phone)
        bus.register_client("c2", "cust-1", laptop)
        bus.register_client("c3", "cust-2", other)

        assert bus.broadcast_to_user("cust-1", "order:updated", {}) == 2
        assert other.events == []
        assert bus.broadcast_to_user(None, "order:updated", {}) == 0

    def test_admin_targeting(self, recorder):
        bus = FanoutBus()
        admin, customer = recorder(), recorder()
        bus.register_client("c1", "admin-1", admin, role="admin")
        bus.register_client("c2", "cust-1", customer)
        bus.broadcast_to_admins("order:created", {})
        assert admin.events == ["order:created"]
        assert customer.events == []

    def test_client_targeting(self, recorder):
        bus = FanoutBus()
        client = recorder()
        bus.register_client("c1", None, client)
        assert bus.broadcast_to_client("c1", "hello", {}) == 1
        assert bus.broadcast_to_client("missing", "hello", {}) == 0


class TestFailureIsolation:
    def test_failing_emitter_does_not_stop_others(self, recorder):
        bus = FanoutBus()

        def broken(event, message):
            raise RuntimeError("socket closed")

        healthy = recorder()
        bus.register_client("bad", "cust-1", broken)
        bus.register_client("good", "cust-1", healthy)

        assert bus.broadcast_to_user("cust-1", "order:updated", {}) == 1
        assert healthy.events == ["order:updated"]
        assert bus.metrics()["delivery_failures"] == 1

    def test_unregister_during_broadcast(self, recorder):
        bus = FanoutBus()
        late = recorder()

        def leaver(event, message):
            bus.unregister_client("c1")

        bus.register_client("c1", "cust-1", leaver)
        bus.register_client("c2", "cust-1", late)
        bus.broadcast("ping", {})
        assert late.events == ["ping"]
        assert bus.client_count() == 1


class TestIntrospection:
    def test_activity_is_bounded(self):
        bus = FanoutBus(max_activity=3)
        for n in range(5):
            bus.broadcast("tick", {"n": n})
        activity = bus.recent_activity()
        assert [entry["data"]["n"] for entry in activity] == [2, 3, 4]
        assert bus.recent_activity(limit=1)[0]["data"]["n"] == 4

    def test_metrics_and_clients_info(self, recorder):
        bus = FanoutBus()
        bus.register_client("c1", "cust-1", recorder(), role="admin")
        bus.broadcast("tick", {})
        metrics = bus.metrics()
        assert metrics["connected_clients"] == 1
        assert metrics["events_published"] == 1
        info = bus.clients_info()[0]
        assert info["role"] == "admin"
        assert info["events_sent"] == 1

    def test_unregister_unknown_client(self):
        assert FanoutBus().unregister_client("nobody") is False

    def test_singleton_reset(self):
        first = get_bus()
        assert get_bus() is first
        reset_bus()
        assert get_bus() is not first
