"""
Browser management: attach to a Chrome DevTools endpoint or launch a browser
with a persistent profile, and open the target page.
"""

import asyncio
import logging
import os
import platform
import shutil
import socket
import subprocess
import time
from pathlib import Path
from typing import Optional

import requests
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_DIR = Path.home() / ".livetweak" / "chrome-profile"


class ChromeManager:
    """Launches a system Chrome with remote debugging enabled and cleans it up."""

    def __init__(self, user_data_dir: Optional[str] = None):
        self.chrome_path: Optional[str] = None
        self.user_data_dir = str(user_data_dir or DEFAULT_PROFILE_DIR)
        self.debug_port: Optional[int] = None
        self.chrome_process: Optional[subprocess.Popen] = None

    def find_chrome_installation(self) -> Optional[str]:
        """Find a Chrome installation for the current platform."""
        system = platform.system()
        if system == "Darwin":
            possible_paths = [
                "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
                "/Applications/Google Chrome Canary.app/Contents/MacOS/Google Chrome Canary",
                os.path.expanduser("~/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"),
            ]
        elif system == "Windows":
            possible_paths = [
                os.path.expandvars(r"%ProgramFiles%\Google\Chrome\Application\chrome.exe"),
                os.path.expandvars(r"%ProgramFiles(x86)%\Google\Chrome\Application\chrome.exe"),
                os.path.expandvars(r"%LocalAppData%\Google\Chrome\Application\chrome.exe"),
            ]
        else:
            possible_paths = [
                shutil.which("google-chrome") or "",
                shutil.which("google-chrome-stable") or "",
                shutil.which("chromium") or "",
                shutil.which("chromium-browser") or "",
            ]

        for path in possible_paths:
            if path and os.path.isfile(path) and os.access(path, os.X_OK):
                logger.info(f"Found Chrome at: {path}")
                return path

        logger.warning("Chrome not found in standard locations")
        return None

    def find_available_port(self, start_port: int = 9222) -> int:
        """Find an available port for Chrome debugging."""
        for port in range(start_port, start_port + 20):
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                try:
                    s.bind(("localhost", port))
                    logger.debug(f"Found available port: {port}")
                    return port
                except OSError:
                    continue

        logger.warning(f"No available ports found starting from {start_port}")
        return start_port

    def is_port_open(self, port: int) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.connect(("localhost", port))
                return True
            except ConnectionRefusedError:
                return False

    def check_existing_debug_instance(self, ports=(9222, 9223, 9224, 9225)) -> Optional[int]:
        """Port of an already running Chrome with remote debugging, if any."""
        for port in ports:
            if not self.is_port_open(port):
                continue
            try:
                response = requests.get(f"http://localhost:{port}/json/version", timeout=2)
                data = response.json()
                if "chrome" in data.get("Browser", "").lower():
                    logger.info(f"Found existing Chrome debugging instance on port {port}")
                    return port
            except (requests.RequestException, ValueError) as e:
                logger.debug(f"Port {port} open but not Chrome debugging: {e}")
        return None

    def launch_chrome_with_debugging(self, chrome_path: str, port: int, max_wait: int = 15) -> bool:
        """Launch Chrome with a dedicated profile and wait for its debugging port."""
        os.makedirs(self.user_data_dir, exist_ok=True)
        chrome_args = [
            chrome_path,
            f"--remote-debugging-port={port}",
            f"--user-data-dir={self.user_data_dir}",
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-background-timer-throttling",
            "--disable-renderer-backgrounding",
            "--disable-backgrounding-occluded-windows",
        ]

        logger.info(f"Launching Chrome with debugging on port {port}")
        logger.debug(f"Chrome command: {' '.join(chrome_args)}")
        self.chrome_process = subprocess.Popen(
            chrome_args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
            text=True,
        )

        for _ in range(max_wait * 10):
            if self.is_port_open(port):
                self.debug_port = port
                logger.info(f"Chrome successfully started on port {port}")
                return True

            if self.chrome_process.poll() is not None:
                stdout, stderr = self.chrome_process.communicate()
                logger.error(f"Chrome process exited early. Exit code: {self.chrome_process.returncode}")
                if stderr:
                    logger.error(f"Chrome stderr: {stderr}")
                return False

            time.sleep(0.1)

        logger.error(f"Chrome process running but port {port} not available after {max_wait} seconds")
        return False

    def get_debug_port(self) -> Optional[int]:
        """Reuse a running debugging instance or launch a new one."""
        existing = self.check_existing_debug_instance()
        if existing:
            self.debug_port = existing
            return existing

        if not self.chrome_path:
            self.chrome_path = self.find_chrome_installation()
            if not self.chrome_path:
                return None

        port = self.find_available_port()
        if self.launch_chrome_with_debugging(self.chrome_path, port):
            return port
        return None

    def cleanup(self) -> None:
        """Terminate a Chrome process this manager launched."""
        if self.chrome_process:
            try:
                self.chrome_process.terminate()
                self.chrome_process.wait(timeout=5)
                logger.info("Chrome process terminated")
            except subprocess.TimeoutExpired:
                logger.warning("Chrome process didn't terminate gracefully, killing")
                self.chrome_process.kill()
            self.chrome_process = None
        self.debug_port = None


class BrowserSession:
    """
    Async context manager providing a Playwright browser context.

    Order of preference: an explicit ``cdp_url``; a system Chrome launched
    with remote debugging when ``use_chrome`` is set; otherwise Playwright's
    bundled Chromium with a persistent profile directory, so the target
    application's local data survives between runs.
    """

    def __init__(self, cdp_url: Optional[str] = None, use_chrome: bool = False,
                 user_data_dir: Optional[str] = None, headless: bool = False):
        self.cdp_url = cdp_url
        self.use_chrome = use_chrome
        self.user_data_dir = str(user_data_dir or DEFAULT_PROFILE_DIR)
        self.headless = headless
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.chrome_manager: Optional[ChromeManager] = None

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> BrowserContext:
        self.playwright = await async_playwright().start()

        endpoint = self.cdp_url
        if endpoint is None and self.use_chrome:
            self.chrome_manager = ChromeManager(self.user_data_dir)
            port = await asyncio.to_thread(self.chrome_manager.get_debug_port)
            if port:
                endpoint = f"http://localhost:{port}"
            else:
                logger.info("Falling back to Playwright's bundled Chromium...")

        if endpoint:
            logger.info(f"Connecting to Chrome via CDP at {endpoint}")
            self.browser = await self.playwright.chromium.connect_over_cdp(endpoint)
            contexts = self.browser.contexts
            self.context = contexts[0] if contexts else await self.browser.new_context()
        else:
            os.makedirs(self.user_data_dir, exist_ok=True)
            logger.info(f"Launching Chromium with profile {self.user_data_dir}")
            self.context = await self.playwright.chromium.launch_persistent_context(
                self.user_data_dir,
                headless=self.headless,
                no_viewport=True,
            )
        return self.context

    async def open(self, url: str) -> Page:
        """Reuse a tab already showing ``url`` or open a new one."""
        for page in self.context.pages:
            if page.url.startswith(url):
                logger.info(f"Reusing open tab {page.url}")
                return page

        pages = self.context.pages
        page = pages[0] if pages and pages[0].url == "about:blank" else await self.context.new_page()
        await page.goto(url)
        await page.wait_for_load_state("domcontentloaded")
        return page

    async def close(self) -> None:
        try:
            if self.browser is not None:
                await self.browser.close()
            elif self.context is not None:
                await self.context.close()
            if self.playwright is not None:
                await self.playwright.stop()
        except Exception as e:
            logger.debug(f"Error during browser cleanup: {e}")
        finally:
            if self.chrome_manager is not None:
                self.chrome_manager.cleanup()
            self.playwright = None
            self.browser = None
            self.context = None
