from agricart import create_app
from agricart.extensions import socketio
from agricart.settings import TestConfig


def _connect(app, token):
    return socketio.test_client(app, auth={"token": token})


def _events(sock, name):
    return [msg["args"][0] for msg in sock.get_received() if msg["name"] == name]


def test_connect_requires_valid_token(app, buyer):
    good = _connect(app, buyer["token"])
    assert good.is_connected()
    good.disconnect()

    assert not _connect(app, "forged").is_connected()
    assert not socketio.test_client(app).is_connected()


def test_inactive_user_is_refused(app, make_user):
    user = make_user("buyer", is_active=False)

    assert not _connect(app, user["token"]).is_connected()


def test_send_message_reaches_receiver_only(app, buyer, farmer, make_user):
    bystander = make_user("buyer")
    alice = _connect(app, buyer["token"])
    bob = _connect(app, farmer["token"])
    carol = _connect(app, bystander["token"])

    alice.emit("sendMessage", {"receiver": farmer["id"], "message": "  Is the kale fresh?  "})

    assert _events(bob, "receiveMessage") == [{"sender": buyer["id"], "message": "Is the kale fresh?"}]
    assert _events(carol, "receiveMessage") == []
    assert _events(alice, "receiveMessage") == []


def test_blank_message_is_dropped(app, buyer, farmer):
    alice = _connect(app, buyer["token"])
    bob = _connect(app, farmer["token"])

    alice.emit("sendMessage", {"receiver": farmer["id"], "message": "   "})
    alice.emit("sendMessage", {"message": "hello"})

    assert _events(bob, "receiveMessage") == []


def test_new_order_is_pushed_to_farmer_room(app, buyer, farmer, make_product, place_order):
    sock = _connect(app, farmer["token"])
    pid = make_product(farmer["id"], name="Mangoes")

    order_id = place_order(buyer["headers"], [(pid, 2)]).get_json()["_id"]

    [payload] = _events(sock, "newOrder")
    assert payload["orderId"] == order_id
    assert payload["status"] == "Processing"
    assert [it["name"] for it in payload["items"]] == ["Mangoes"]


def test_handlers_are_attached_to_every_app(app):
    second = create_app(TestConfig)

    assert not socketio.test_client(second, auth={"token": "forged"}).is_connected()
    assert not socketio.test_client(second).is_connected()
