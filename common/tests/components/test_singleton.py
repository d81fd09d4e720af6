from unittest import TestCase

from common.components.singleton import Singleton


class CipherLikeSingleton(Singleton):
    def __init__(self, key: str):
        self.key = key


class ServiceLikeSingleton(Singleton):
    def __init__(self, cipher=None, provider=None):
        self.cipher = cipher
        self.provider = provider


class TestSingleton(TestCase):
    def tearDown(self):
        CipherLikeSingleton.clear_instances()
        ServiceLikeSingleton.clear_instances()

    def test_same_args_same_instance(self):
        instance_1 = CipherLikeSingleton("k1")
        instance_2 = CipherLikeSingleton("k1")
        instance_3 = CipherLikeSingleton("k2")
        self.assertIs(instance_1, instance_2)
        self.assertIsNot(instance_1, instance_3)

    def test_kwargs_order_does_not_matter(self):
        cipher = object()
        provider = object()
        instance_1 = ServiceLikeSingleton(cipher=cipher, provider=provider)
        instance_2 = ServiceLikeSingleton(provider=provider, cipher=cipher)
        self.assertIs(instance_1, instance_2)

    def test_different_collaborators_different_instance(self):
        instance_1 = ServiceLikeSingleton(cipher=object())
        instance_2 = ServiceLikeSingleton(cipher=object())
        self.assertIsNot(instance_1, instance_2)

    def test_default_instance(self):
        self.assertIs(ServiceLikeSingleton(), ServiceLikeSingleton())

    def test_clear_instances(self):
        instance_1 = CipherLikeSingleton("k1")
        CipherLikeSingleton.clear_instances()
        instance_2 = CipherLikeSingleton("k1")
        self.assertIsNot(instance_1, instance_2)
        self.assertEqual(instance_2.key, "k1")
