import datetime
import pickle

import pytest
from django.core.exceptions import ImproperlyConfigured

from django_redis_storage.compat import create_serializer, is_serializer_enabled
from django_redis_storage.exceptions import ConfigurationError, SerializerError
from django_redis_storage.serializers.json import JSONSerializer
from django_redis_storage.serializers.msgpack import MessagePackSerializer
from django_redis_storage.serializers.pickle import PickleSerializer


class TestJSONSerializer:
    def test_basic_roundtrip(self):
        serializer = JSONSerializer()
        data = {"key": "value", "number": 42, "nested": {"list": [1, 2, 3]}}
        encoded = serializer.dumps(data)
        decoded = serializer.loads(encoded)
        assert decoded == data

    def test_regular_string_not_modified(self):
        serializer = JSONSerializer()
        data = {"message": "Hello world", "code": "ABC-123"}
        decoded = serializer.loads(serializer.dumps(data))
        assert decoded == data
        assert isinstance(decoded["message"], str)

    def test_datetime_comes_back_as_string(self):
        serializer = JSONSerializer()
        decoded = serializer.loads(serializer.dumps({"at": datetime.datetime(2024, 1, 2, 3, 4, 5)}))
        assert decoded == {"at": "2024-01-02T03:04:05"}

    def test_loads_invalid_data_raises_serializer_error(self):
        with pytest.raises(SerializerError):
            JSONSerializer().loads(b"{not json")


class TestPickleSerializer:
    def test_protocol_not_explicitly_specified(self):
        serializer = PickleSerializer()
        assert serializer.protocol == pickle.DEFAULT_PROTOCOL

    def test_protocol_too_high(self):
        with pytest.raises(
            ImproperlyConfigured,
            match=f"protocol must be between 0 and pickle.HIGHEST_PROTOCOL: {pickle.HIGHEST_PROTOCOL}",
        ):
            PickleSerializer(protocol=pickle.HIGHEST_PROTOCOL + 1)

    def test_protocol_explicit(self):
        serializer = PickleSerializer(protocol=4)
        assert serializer.protocol == 4

    def test_loads_invalid_data_raises_serializer_error(self):
        with pytest.raises(SerializerError):
            PickleSerializer().loads(b"not a pickle")


class TestMessagePackSerializer:
    def test_basic_roundtrip(self):
        serializer = MessagePackSerializer()
        data = {"key": "value", "number": 42, "nested": {"list": [1, 2, 3]}}
        encoded = serializer.dumps(data)
        assert isinstance(encoded, bytes)
        assert serializer.loads(encoded) == data

    def test_loads_invalid_data_raises_serializer_error(self):
        serializer = MessagePackSerializer()
        with pytest.raises(SerializerError):
            serializer.loads(b"\xff\xfe\xfd")  # Invalid msgpack data

    def test_bytes_roundtrip(self):
        serializer = MessagePackSerializer()
        assert serializer.loads(serializer.dumps(b"binary data")) == b"binary data"

    def test_none_roundtrip(self):
        serializer = MessagePackSerializer()
        assert serializer.loads(serializer.dumps(None)) is None


class TestCreateSerializer:
    @pytest.mark.parametrize(
        ("config", "cls"),
        [
            ("pickle", PickleSerializer),
            ("JSON", JSONSerializer),
            ("msgpack", MessagePackSerializer),
            ("django_redis_storage.serializers.json.JSONSerializer", JSONSerializer),
            (PickleSerializer, PickleSerializer),
        ],
    )
    def test_short_names_paths_and_classes(self, config, cls):
        assert isinstance(create_serializer(config), cls)

    def test_instance_is_used_as_is(self):
        serializer = JSONSerializer()
        assert create_serializer(serializer) is serializer

    @pytest.mark.parametrize("config", [None, "none", "NONE", False, 0])
    def test_disabled(self, config):
        assert create_serializer(config) is None
        assert not is_serializer_enabled(config)

    def test_kwargs_are_passed(self):
        assert create_serializer("pickle", protocol=2).protocol == 2

    def test_unknown_short_name(self):
        with pytest.raises(ConfigurationError, match="Unknown serializer 'yaml'"):
            create_serializer("yaml")

    def test_unimportable_path(self):
        with pytest.raises(ConfigurationError, match="Could not import serializer"):
            create_serializer("myproject.serializers.Missing")


class TestSerializerErrors:
    def test_json_rejects_unserializable_value(self):
        with pytest.raises(SerializerError):
            JSONSerializer().dumps(object())

    def test_msgpack_rejects_unserializable_value(self):
        with pytest.raises(SerializerError):
            MessagePackSerializer().dumps(object())

    def test_pickle_protocol_must_not_be_negative(self):
        with pytest.raises(ConfigurationError):
            PickleSerializer(protocol=-1)
