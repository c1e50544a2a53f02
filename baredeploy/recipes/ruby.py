"""
Ruby recipe: distribution ruby + bundler, systemd supervision.
"""

from typing import List, Optional

from ..analyzer.profile import RuntimeKind, RuntimeProfile
from ..analyzer.walk import has_file, procfile_web
from .base import InstallPlan, PathLike, Recipe, StartCommand, apt_steps, first_candidate, yum_steps

INSTALL_BUNDLER = "sudo gem install bundler --no-document"


class RubyRecipe(Recipe):
    runtime = RuntimeKind.RUBY

    def install_plan(self, profile: RuntimeProfile) -> InstallPlan:
        return InstallPlan(
            binary="ruby",
            version_command="ruby --version && bundle --version",
            probe="command -v ruby >/dev/null 2>&1 && command -v bundle >/dev/null 2>&1",
            steps={
                "apt": apt_steps("ruby-full", "build-essential") + (INSTALL_BUNDLER,),
                "yum": yum_steps("ruby", "ruby-devel", "gcc", "gcc-c++", "make") + (INSTALL_BUNDLER,),
            },
        )

    def dependency_steps(self, project_root: Optional[PathLike], profile: RuntimeProfile) -> List[str]:
        if not has_file(project_root, "Gemfile"):
            return []
        return [
            "bundle config set --local deployment true",
            "bundle config set --local without 'development test'",
            "bundle install",
        ]

    def start_command(self, project_root: Optional[PathLike], port: Optional[int]) -> StartCommand:
        web = procfile_web(project_root) if project_root else None
        if web:
            return StartCommand(web, "Procfile web")
        runner = "bundle exec ruby" if has_file(project_root, "Gemfile") else "ruby"
        return first_candidate(project_root, [
            ("app.rb", f"{runner} app.rb"),
            ("config.ru", f"bundle exec rackup -o 0.0.0.0 -p {port}"),
        ])
