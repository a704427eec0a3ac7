import threading
import unittest

import fakeredis

from backend import InMemoryRoomStore, RedisRoomStore
from redis_keys import REDIS_ROOM_KEY
from schemas.rooms import PlayerSlot, Role, RoomPhase

ROOM = "1234"


class RoomStoreContract:
    """Shared checks; subclasses provide ``make_store``."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()

    def test_position_missing_until_written(self):
        self.assertIsNone(self.store.get_position(ROOM))
        self.store.set_position(ROOM, 3, 4)
        position = self.store.get_position(ROOM)
        self.assertEqual((position["x"], position["y"]), (3, 4))
        self.assertIn("timestamp", position)

    def test_position_last_write_wins(self):
        self.store.set_position(ROOM, 1, 1)
        self.store.set_position(ROOM, 2, 5)
        position = self.store.get_position(ROOM)
        self.assertEqual((position["x"], position["y"]), (2, 5))

    def test_same_position_twice_reads_the_same(self):
        self.store.set_position(ROOM, 6, 2)
        first = self.store.get_position(ROOM)
        self.store.set_position(ROOM, 6, 2)
        second = self.store.get_position(ROOM)
        self.assertEqual((first["x"], first["y"]), (second["x"], second["y"]))

    def test_rooms_are_independent(self):
        self.store.set_position(ROOM, 1, 2)
        self.assertIsNone(self.store.get_position("9999"))

    def test_role_write_assigns_complement(self):
        roles = self.store.set_role(ROOM, Role.NAVIGATOR, PlayerSlot.PLAYER1)
        self.assertEqual(roles, {"player1": "navigator", "player2": "guide"})
        self.assertEqual(self.store.get_roles(ROOM), roles)

    def test_last_role_write_wins_for_both_slots(self):
        self.store.set_role(ROOM, Role.NAVIGATOR, PlayerSlot.PLAYER1)
        roles = self.store.set_role(ROOM, Role.NAVIGATOR, PlayerSlot.PLAYER2)
        self.assertEqual(roles, {"player2": "navigator", "player1": "guide"})

    def test_roles_always_a_partition(self):
        for role in Role:
            for slot in PlayerSlot:
                roles = self.store.set_role(ROOM, role, slot)
                self.assertEqual(sorted(roles.values()), ["guide", "navigator"])
                self.assertEqual(set(roles), {"player1", "player2"})

    def test_roles_empty_before_assignment(self):
        self.assertEqual(self.store.get_roles(ROOM), {})

    def test_switch_roles(self):
        self.store.set_role(ROOM, Role.NAVIGATOR, PlayerSlot.PLAYER1)
        roles = self.store.switch_roles(ROOM)
        self.assertEqual(roles, {"player1": "guide", "player2": "navigator"})
        self.assertEqual(self.store.get_roles(ROOM), roles)

    def test_switch_roles_without_roles(self):
        self.assertIsNone(self.store.switch_roles(ROOM))

    def test_game_state(self):
        self.assertIsNone(self.store.get_game_state(ROOM))
        self.assertTrue(self.store.set_game_state(ROOM, RoomPhase.LEVEL_COMPLETE, 2))
        self.assertEqual(self.store.get_game_state(ROOM), {"phase": "level-complete", "currentLevel": 2})

    def test_stale_level_write_ignored(self):
        self.store.set_game_state(ROOM, RoomPhase.PLAYING, 3)
        self.assertFalse(self.store.set_game_state(ROOM, RoomPhase.LEVEL_COMPLETE, 2))
        self.assertEqual(self.store.get_game_state(ROOM), {"phase": "playing", "currentLevel": 3})

    def test_new_level_clears_position(self):
        self.store.set_game_state(ROOM, RoomPhase.PLAYING, 1)
        self.store.set_position(ROOM, 14, 14)
        self.store.set_game_state(ROOM, RoomPhase.LEVEL_COMPLETE, 1)
        self.assertIsNotNone(self.store.get_position(ROOM))
        self.store.set_game_state(ROOM, RoomPhase.PLAYING, 2)
        self.assertIsNone(self.store.get_position(ROOM))

    def test_join_and_status(self):
        status = self.store.room_status(ROOM)
        self.assertFalse(status["exists"])
        self.assertFalse(status["both_joined"])
        result = self.store.join(ROOM, PlayerSlot.PLAYER1)
        self.assertFalse(result["both_joined"])
        self.assertTrue(result["players"]["player1"]["joined"])
        self.store.join(ROOM, PlayerSlot.PLAYER2)
        status = self.store.room_status(ROOM)
        self.assertTrue(status["exists"])
        self.assertTrue(status["both_joined"])

    def test_both_ready_starts_level_one(self):
        first = self.store.mark_ready(ROOM, PlayerSlot.PLAYER1)
        self.assertFalse(first["both_ready"])
        self.assertIsNone(self.store.get_game_state(ROOM))
        second = self.store.mark_ready(ROOM, PlayerSlot.PLAYER2)
        self.assertTrue(second["both_ready"])
        self.assertEqual(self.store.get_game_state(ROOM), {"phase": "playing", "currentLevel": 1})
        self.assertTrue(self.store.ready_status(ROOM)["both_ready"])

    def test_repeated_ready_does_not_reset_level(self):
        self.store.mark_ready(ROOM, PlayerSlot.PLAYER1)
        self.store.mark_ready(ROOM, PlayerSlot.PLAYER2)
        self.store.set_game_state(ROOM, RoomPhase.LEVEL_COMPLETE, 1)
        self.store.mark_ready(ROOM, PlayerSlot.PLAYER2)
        self.assertEqual(self.store.get_game_state(ROOM), {"phase": "level-complete", "currentLevel": 1})

    def test_concurrent_joins_are_not_lost(self):
        rooms = [f"{n:04d}" for n in range(20)]

        def join_all(slot):
            for room in rooms:
                self.store.join(room, slot)

        threads = [threading.Thread(target=join_all, args=(slot,)) for slot in PlayerSlot]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        for room in rooms:
            self.assertTrue(self.store.room_status(room)["both_joined"])


class TestInMemoryRoomStore(RoomStoreContract, unittest.TestCase):
    def make_store(self):
        return InMemoryRoomStore()


class TestRedisRoomStore(RoomStoreContract, unittest.TestCase):
    def make_store(self):
        self.redis = fakeredis.FakeRedis(decode_responses=True)
        return RedisRoomStore(redis_client=self.redis, ttl=600)

    def test_room_is_one_hash_with_ttl(self):
        self.store.set_position(ROOM, 1, 2)
        key = REDIS_ROOM_KEY.format(code=ROOM)
        self.assertEqual(self.redis.type(key), "hash")
        self.assertGreater(self.redis.ttl(key), 0)

    def test_cleared_field_removed_from_hash(self):
        self.store.set_game_state(ROOM, RoomPhase.PLAYING, 1)
        self.store.set_position(ROOM, 3, 3)
        self.store.set_game_state(ROOM, RoomPhase.PLAYING, 2)
        key = REDIS_ROOM_KEY.format(code=ROOM)
        self.assertNotIn("position", self.redis.hkeys(key))


if __name__ == "__main__":
    unittest.main()
