from locust import HttpUser, task, between, TaskSet
from random import choice, randint
import logging
import os

LOAD_USER_EMAIL = os.getenv("LOAD_USER_EMAIL", "load@example.com")
LOAD_USER_PASSWORD = os.getenv("LOAD_USER_PASSWORD", "loadtest123")


class UserBehavior(TaskSet):
    def on_start(self):
        # Login to get access token
        self.token = None
        self.headers = {}
        self.posts = []
        self.login()
        self.view_feed()

    def login(self):
        response = self.client.post(
            "/api/auth/login",
            json={"email": LOAD_USER_EMAIL, "password": LOAD_USER_PASSWORD}
        )
        if response.status_code == 200:
            self.token = response.json()["data"]["tokens"]["accessToken"]
            self.headers = {'Authorization': f'Bearer {self.token}'}

    @task(5)
    def view_feed(self):
        response = self.client.get(
            f"/api/posts/feed/timeline?page={randint(1, 3)}&limit=20",
            headers=self.headers,
            name="/api/posts/feed/timeline"
        )
        if response.status_code == 200:
            posts = response.json()["data"]["posts"]
            known = {p["id"] for p in self.posts}
            self.posts.extend(p for p in posts if p["id"] not in known)

    @task(3)
    def view_post(self):
        if self.posts:
            post = choice(self.posts)
            self.client.get(f"/api/posts/{post['id']}", headers=self.headers, name="/api/posts/[id]")

    @task(2)
    def toggle_like(self):
        if not self.posts:
            return
        post = choice(self.posts)
        response = self.client.post(
            f"/api/posts/{post['id']}/like",
            headers=self.headers,
            name="/api/posts/[id]/like",
            catch_response=True
        )
        with response:
            if response.status_code == 409:
                response.success()
                self.client.delete(
                    f"/api/posts/{post['id']}/like",
                    headers=self.headers,
                    name="/api/posts/[id]/like"
                )

    @task(2)
    def view_comments(self):
        if self.posts:
            post = choice(self.posts)
            self.client.get(
                f"/api/posts/{post['id']}/comments?page=1&limit=20",
                name="/api/posts/[id]/comments"
            )

    @task(1)
    def add_comment(self):
        if self.posts:
            post = choice(self.posts)
            self.client.post(
                f"/api/posts/{post['id']}/comments",
                headers=self.headers,
                json={"commentText": f"Load test comment {randint(1, 1000)}"},
                name="/api/posts/[id]/comments"
            )


class WebsiteUser(HttpUser):
    tasks = [UserBehavior]
    wait_time = between(1, 5)  # Random wait time between tasks
    host = os.getenv("LOAD_HOST", "http://localhost:8000")

    def on_start(self):
        logging.info("User started")
