from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from backend.imagegen.core.config import settings
from backend.imagegen.schemas.jobs import GenerateImageRequest
from backend.imagegen.services.gemini import ContentPart
from backend.imagegen.services.generation import (
    JobStateError,
    dispatch_generation,
    run_generation,
    start_generation_in_thread,
)

from backend.tests.fakes import PNG_BYTES, FakeFetcher, FakeImageClient, make_services, seed_business


class TestRunGeneration(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)

    def tearDown(self) -> None:
        self._td.cleanup()

    def _run(self, svc, req: GenerateImageRequest, job_id: str = "job-1", create: bool = True):
        business = svc.businesses.get_business(req.business_id)
        if create:
            svc.jobs.create_job(job_id, req.business_id, prompt=req.prompt, aspect_ratio=req.aspect_ratio)
        return run_generation(job_id, req, business, **svc.pipeline_deps())

    def test_success_uploads_and_links_asset(self) -> None:
        client = FakeImageClient()
        svc = make_services(self.root, image_client=client)
        seed_business(svc)
        req = GenerateImageRequest(businessId="biz-1", prompt="A latte at sunrise", aspectRatio="4:5", modelTier="ultra")

        outcome = self._run(svc, req)

        self.assertEqual(outcome.status, "completed")
        rec = svc.jobs.get_job("job-1")
        self.assertEqual(rec.status, "completed")
        asset = svc.assets.get_asset(rec.result_asset_id)
        self.assertEqual(asset.business_id, "biz-1")
        self.assertEqual(asset.prompt, "A latte at sunrise")
        self.assertEqual(asset.aspect_ratio, "4:5")
        self.assertTrue(asset.content.startswith("http://testserver/assets/files/biz-1/generated/"))

        name = asset.content.rsplit("/", 1)[-1]
        self.assertEqual(svc.storage.resolve("biz-1", name).read_bytes(), PNG_BYTES)

        self.assertEqual(len(client.calls), 1)
        self.assertEqual(client.calls[0]["model_tier"], "ultra")
        self.assertEqual(client.calls[0]["aspect_ratio"], "4:5")
        self.assertIn("A latte at sunrise", client.calls[0]["parts"][0].text)

    def test_debug_prompt_skips_model_call(self) -> None:
        client = FakeImageClient()
        svc = make_services(self.root, image_client=client)
        seed_business(svc)
        req = GenerateImageRequest(businessId="biz-1", prompt="debug: anything", aspectRatio="1:1")

        outcome = self._run(svc, req)

        self.assertEqual(outcome.status, "completed")
        self.assertEqual(client.calls, [])
        asset = svc.assets.get_asset(svc.jobs.get_job("job-1").result_asset_id)
        self.assertEqual(asset.content, settings.debug_placeholder_url)

    def test_debug_prefix_is_case_insensitive(self) -> None:
        client = FakeImageClient()
        svc = make_services(self.root, image_client=client)
        seed_business(svc)
        self._run(svc, GenerateImageRequest(businessId="biz-1", prompt="DEBUG: check layout"))
        self.assertEqual(client.calls, [])
        self.assertEqual(svc.jobs.get_job("job-1").status, "completed")

    def test_response_without_image_fails_job(self) -> None:
        client = FakeImageClient(parts=[ContentPart.of_text("I cannot draw that")])
        svc = make_services(self.root, image_client=client)
        seed_business(svc)

        outcome = self._run(svc, GenerateImageRequest(businessId="biz-1", prompt="A latte"))

        self.assertEqual(outcome.status, "failed")
        rec = svc.jobs.get_job("job-1")
        self.assertEqual(rec.status, "failed")
        self.assertIn("No image in response", rec.error_message)
        self.assertIsNone(rec.result_asset_id)

    def test_model_error_is_recorded_not_raised(self) -> None:
        svc = make_services(self.root, image_client=FakeImageClient(error=RuntimeError("quota exceeded")))
        seed_business(svc)

        outcome = self._run(svc, GenerateImageRequest(businessId="biz-1", prompt="A latte"))

        self.assertEqual(outcome.status, "failed")
        self.assertEqual(svc.jobs.get_job("job-1").error_message, "quota exceeded")

    def test_failed_reference_fetch_is_dropped(self) -> None:
        client = FakeImageClient()
        fetcher = FakeFetcher({"https://cdn.example/style.png": (b"style", "image/jpeg")})
        svc = make_services(self.root, image_client=client, fetcher=fetcher)
        seed_business(svc, logo_url="https://cdn.example/missing-logo.png")
        req = GenerateImageRequest(
            businessId="biz-1",
            prompt="A latte",
            subjectContext={"type": "product", "imageUrl": "https://cdn.example/broken.png"},
            stylePreset={
                "name": "Moody",
                "referenceImages": [
                    "https://cdn.example/style.png",
                    {"url": "https://cdn.example/inactive.png", "isActive": False},
                ],
            },
        )

        outcome = self._run(svc, req)

        self.assertEqual(outcome.status, "completed")
        self.assertEqual(
            fetcher.requested,
            [
                "https://cdn.example/broken.png",
                "https://cdn.example/missing-logo.png",
                "https://cdn.example/style.png",
            ],
        )
        parts = client.calls[0]["parts"]
        images = [p for p in parts if p.is_image]
        self.assertEqual(len(images), 1)
        self.assertEqual(images[0].data, b"style")
        self.assertEqual(parts[-1].text, " [REFERENCE IMAGE 1: STYLE] ")
        asset = svc.assets.get_asset(svc.jobs.get_job("job-1").result_asset_id)
        self.assertEqual(asset.style_preset, "Moody")

    def test_deleted_job_is_skipped(self) -> None:
        client = FakeImageClient()
        svc = make_services(self.root, image_client=client)
        seed_business(svc)
        req = GenerateImageRequest(businessId="biz-1", prompt="A latte")

        self.assertIsNone(self._run(svc, req, create=False))
        self.assertEqual(client.calls, [])

    def test_deleted_before_model_call_creates_nothing(self) -> None:
        client = FakeImageClient()
        svc = make_services(self.root, image_client=client)
        seed_business(svc)
        svc.jobs.create_job("job-1", "biz-1", prompt="A latte")

        def fetch_and_cancel(url):
            svc.jobs.delete_job("job-1")
            return None

        business = svc.businesses.get_business("biz-1")
        req = GenerateImageRequest(
            businessId="biz-1", prompt="A latte", subjectContext={"imageUrl": "https://cdn.example/p.png"}
        )
        deps = dict(svc.pipeline_deps(), fetcher=fetch_and_cancel)

        self.assertIsNone(run_generation("job-1", req, business, **deps))
        self.assertEqual(client.calls, [])
        self.assertIsNone(svc.jobs.find_job("job-1"))

    def test_deleted_during_model_call_leaves_no_asset(self) -> None:
        svc = make_services(self.root)
        seed_business(svc)
        svc.jobs.create_job("job-1", "biz-1", prompt="A latte")

        class CancellingClient(FakeImageClient):
            def generate(self, parts, *, model_tier, aspect_ratio):
                svc.jobs.delete_job("job-1")
                return super().generate(parts, model_tier=model_tier, aspect_ratio=aspect_ratio)

        client = CancellingClient()
        deps = dict(svc.pipeline_deps(), image_client=client)
        business = svc.businesses.get_business("biz-1")

        self.assertIsNone(run_generation("job-1", GenerateImageRequest(businessId="biz-1", prompt="A latte"), business, **deps))
        self.assertEqual(len(client.calls), 1)
        self.assertEqual(svc.assets.list_assets("biz-1"), [])
        generated = svc.storage.generated_dir("biz-1")
        self.assertEqual(list(generated.iterdir()) if generated.exists() else [], [])

    def test_rerunning_a_finished_job_is_rejected(self) -> None:
        svc = make_services(self.root)
        seed_business(svc)
        req = GenerateImageRequest(businessId="biz-1", prompt="debug: once")
        self._run(svc, req)

        business = svc.businesses.get_business("biz-1")
        with self.assertRaises(JobStateError):
            run_generation("job-1", req, business, **svc.pipeline_deps())

    def test_dispatch_inline_reaches_terminal_state_before_returning(self) -> None:
        svc = make_services(self.root)
        business = seed_business(svc)
        req = GenerateImageRequest(businessId="biz-1", prompt="A latte")
        svc.jobs.create_job("job-1", "biz-1", prompt=req.prompt)

        dispatch_generation("job-1", req, business, run_mode="inline", **svc.pipeline_deps())
        self.assertEqual(svc.jobs.get_job("job-1").status, "completed")

        with self.assertRaises(RuntimeError):
            dispatch_generation("job-2", req, business, run_mode="sometimes", **svc.pipeline_deps())

    def test_background_thread_reaches_terminal_state(self) -> None:
        svc = make_services(self.root, image_client=FakeImageClient(parts=[]))
        business = seed_business(svc)
        req = GenerateImageRequest(businessId="biz-1", prompt="A latte")
        svc.jobs.create_job("job-1", "biz-1", prompt=req.prompt)

        t = start_generation_in_thread("job-1", req, business, **svc.pipeline_deps())
        t.join(timeout=10)

        self.assertFalse(t.is_alive())
        rec = svc.jobs.get_job("job-1")
        self.assertEqual(rec.status, "failed")
        self.assertEqual(rec.error_message, "No image in response")


if __name__ == "__main__":
    unittest.main()
