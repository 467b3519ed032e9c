import unittest

from catalog import create_video, list_videos, update_video
from database import fetch_videos
from errors import NotFoundError, ValidationError
from global_sync import (
    cleanup_global_data,
    cleanup_master_once,
    list_global_folders,
    list_global_videos,
    list_subscriptions,
    shadow_folder_name,
    subscribe,
    sync_all_subscriptions,
    sync_subscription,
    unsubscribe,
)
from identity import create_folder, create_kid, delete_folder, list_folders
from progress import mark_watched
from store_case import StoreTestCase

MASTER = "master"
PARENT = "parent-1"


class GlobalSyncTestCase(StoreTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.playlist = await create_folder(self.db, MASTER, "Science")
        self.master_kid = await create_kid(self.db, MASTER, "Tester")
        self.mv1 = await create_video(
            self.db, MASTER, "https://youtu.be/sci1", folder_id=self.playlist["id"], priority=2
        )
        self.mv2 = await create_video(
            self.db, MASTER, "https://www.tiktok.com/@lab/video/555", folder_id=self.playlist["id"], priority=7
        )
        self.ava = await create_kid(self.db, PARENT, "Ava")
        self.ben = await create_kid(self.db, PARENT, "Ben")

    async def shadow_videos(self):
        folders = [f for f in await list_folders(self.db, PARENT) if f["name"] == shadow_folder_name(self.playlist["id"])]
        if not folders:
            return None
        return await fetch_videos(self.db, PARENT, folders[0]["id"])


class MasterListingTests(GlobalSyncTestCase):
    async def test_folders_with_counts_exclude_shadow(self):
        await create_folder(self.db, MASTER, "Empty")
        await self.insert_folder(MASTER, "stale", "__global_folder_x")

        folders = await list_global_folders(self.db, MASTER)

        self.assertEqual(
            folders,
            [
                {"id": self.playlist["id"], "name": "Science", "videoCount": 2},
                {"id": folders[1]["id"], "name": "Empty", "videoCount": 0},
            ],
        )

    async def test_no_master_configured(self):
        self.assertEqual(await list_global_folders(self.db, ""), [])
        with self.assertRaises(ValidationError):
            await subscribe(self.db, PARENT, self.playlist["id"], [], "")

    async def test_global_videos(self):
        videos = await list_global_videos(self.db, MASTER, self.playlist["id"])
        self.assertEqual({v["id"] for v in videos}, {self.mv1["id"], self.mv2["id"]})
        with self.assertRaises(NotFoundError):
            await list_global_videos(self.db, MASTER, "folder_missing")


class SubscribeTests(GlobalSyncTestCase):
    async def test_subscribe_copies_videos(self):
        await mark_watched(
            self.db, self.mv1["id"], self.master_kid["id"], MASTER, {"recordedAt": "now", "duration": 2}
        )

        subscription = await subscribe(self.db, PARENT, self.playlist["id"], [], MASTER)

        self.assertEqual(subscription["kidIds"], [])
        copies = await self.shadow_videos()
        self.assertEqual(len(copies), 2)
        by_id = {v["platformVideoId"]: v for v in copies}
        self.assertEqual(by_id["sci1"]["priority"], 2)
        self.assertEqual(by_id["555"]["platform"], "tiktok")
        for video in copies:
            self.assertTrue(video["id"].endswith("_g"))
            self.assertEqual(video["totalViews"], 0)
            self.assertEqual(video["assigned"], {self.ava["id"]: True, self.ben["id"]: True})
            self.assertEqual(
                video["progress"], {self.ava["id"]: {"watched": False}, self.ben["id"]: {"watched": False}}
            )

    async def test_subscribe_with_explicit_kids(self):
        await subscribe(self.db, PARENT, self.playlist["id"], [self.ben["id"], "kid_unknown"], MASTER)
        for video in await self.shadow_videos():
            self.assertEqual(video["assigned"], {self.ben["id"]: True})

    async def test_resubscribe_updates_in_place(self):
        first = await subscribe(self.db, PARENT, self.playlist["id"], [self.ava["id"]], MASTER)
        second = await subscribe(self.db, PARENT, self.playlist["id"], [self.ben["id"]], MASTER)

        self.assertEqual(first["id"], second["id"])
        subscriptions = await list_subscriptions(self.db, PARENT)
        self.assertEqual(len(subscriptions), 1)
        self.assertEqual(subscriptions[0]["kidIds"], [self.ben["id"]])
        self.assertEqual(len(await self.shadow_videos()), 2)

    async def test_subscribe_rejections(self):
        with self.assertRaises(NotFoundError):
            await subscribe(self.db, PARENT, "folder_missing", [], MASTER)
        with self.assertRaises(ValidationError):
            await subscribe(self.db, MASTER, self.playlist["id"], [], MASTER)
        self.assertEqual(await list_subscriptions(self.db, PARENT), [])

    async def test_sync_is_idempotent(self):
        await subscribe(self.db, PARENT, self.playlist["id"], [], MASTER)
        self.assertEqual(await sync_subscription(self.db, PARENT, self.playlist["id"], MASTER), 0)
        self.assertEqual(len(await self.shadow_videos()), 2)
        shadows = [f for f in await list_folders(self.db, PARENT) if f["name"].startswith("__global_")]
        self.assertEqual(len(shadows), 1)

    async def test_kid_added_later_gets_synced_videos_without_copies(self):
        await subscribe(self.db, PARENT, self.playlist["id"], [], MASTER)
        cleo = await create_kid(self.db, PARENT, "Cleo")

        self.assertEqual(await sync_subscription(self.db, PARENT, self.playlist["id"], MASTER), 0)
        videos = await self.shadow_videos()
        self.assertEqual(len(videos), 2)
        for video in videos:
            self.assertTrue(video["assigned"][cleo["id"]])
            self.assertEqual(video["progress"][cleo["id"]], {"watched": False})
        self.assertEqual(len(await list_videos(self.db, PARENT)), 2)

    async def test_sync_picks_up_new_master_videos(self):
        await subscribe(self.db, PARENT, self.playlist["id"], [], MASTER)
        await create_video(self.db, MASTER, "https://youtu.be/sci3", folder_id=self.playlist["id"])

        self.assertEqual(await sync_all_subscriptions(self.db, PARENT, MASTER), 1)
        self.assertEqual(len(await self.shadow_videos()), 3)

    async def test_sync_skips_videos_already_in_library(self):
        await create_video(self.db, PARENT, "https://www.youtube.com/watch?v=sci1")
        await subscribe(self.db, PARENT, self.playlist["id"], [], MASTER)

        copies = await self.shadow_videos()
        self.assertEqual([v["platformVideoId"] for v in copies], ["555"])
        self.assertEqual(len(await list_videos(self.db, PARENT)), 2)

    async def test_sync_without_subscription(self):
        with self.assertRaises(NotFoundError):
            await sync_subscription(self.db, PARENT, self.playlist["id"], MASTER)

    async def test_sync_all_skips_removed_master_folder(self):
        await subscribe(self.db, PARENT, self.playlist["id"], [], MASTER)
        await delete_folder(self.db, self.playlist["id"], MASTER)
        self.assertEqual(await sync_all_subscriptions(self.db, PARENT, MASTER), 0)


class TeardownTests(GlobalSyncTestCase):
    async def test_unsubscribe_removes_shadow_data(self):
        own = await create_video(self.db, PARENT, "https://youtu.be/mine")
        await subscribe(self.db, PARENT, self.playlist["id"], [], MASTER)

        await unsubscribe(self.db, PARENT, self.playlist["id"])

        self.assertIsNone(await self.shadow_videos())
        self.assertEqual(await list_subscriptions(self.db, PARENT), [])
        self.assertEqual([v["id"] for v in await list_videos(self.db, PARENT)], [own["id"]])
        # master library untouched
        self.assertEqual(len(await list_videos(self.db, MASTER)), 2)

    async def test_own_video_cannot_join_shadow_folder(self):
        own = await create_video(self.db, PARENT, "https://youtu.be/mine")
        await subscribe(self.db, PARENT, self.playlist["id"], [], MASTER)
        shadow = [f for f in await list_folders(self.db, PARENT) if f["name"].startswith("__global_")][0]

        with self.assertRaises(ValidationError):
            await update_video(self.db, own["id"], PARENT, {"folderId": shadow["id"]})
        with self.assertRaises(ValidationError):
            await create_video(self.db, PARENT, "https://youtu.be/mine2", folder_id=shadow["id"])

        await unsubscribe(self.db, PARENT, self.playlist["id"])
        self.assertEqual([v["id"] for v in await list_videos(self.db, PARENT)], [own["id"]])

    async def test_unsubscribe_unknown(self):
        with self.assertRaises(NotFoundError):
            await unsubscribe(self.db, PARENT, self.playlist["id"])

    async def test_cleanup_global_data(self):
        await subscribe(self.db, PARENT, self.playlist["id"], [], MASTER)
        await create_folder(self.db, PARENT, "Keep me")

        await cleanup_global_data(self.db, PARENT)

        self.assertEqual([f["name"] for f in await list_folders(self.db, PARENT)], ["Keep me"])
        self.assertEqual(await list_videos(self.db, PARENT), [])
        self.assertEqual(await list_subscriptions(self.db, PARENT), [])

    async def test_master_cleanup_runs_once(self):
        await self.insert_folder(MASTER, "stale", "__global_folder_old")
        await create_video(self.db, MASTER, "https://youtu.be/stale", folder_id="stale")

        self.assertTrue(await cleanup_master_once(self.db, MASTER))
        self.assertEqual(len(await list_videos(self.db, MASTER)), 2)

        await self.insert_folder(MASTER, "stale2", "__global_folder_new")
        self.assertFalse(await cleanup_master_once(self.db, MASTER))
        self.assertIn("stale2", [f["id"] for f in await list_folders(self.db, MASTER)])


if __name__ == "__main__":
    unittest.main()
