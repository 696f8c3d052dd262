# matrixci_workflow.py
# Cross-platform toolchain matrix: 3 images x 2 rustup channels, build + test.
from __future__ import annotations

from matrixci import axis, os_is, os_is_not, pipeline, schedule, sh, step, triggers, value, variant

POSIX_INSTALL = (
    "curl https://sh.rustup.rs -sSf | sh -s -- -y --default-toolchain $RUSTUP_TOOLCHAIN\n"
    'echo "##vso[task.setvariable variable=PATH;]$PATH:$HOME/.cargo/bin"'
)

WINDOWS_INSTALL = (
    "curl -sSf -o rustup-init.exe https://win.rustup.rs && "
    "rustup-init.exe -y --default-toolchain %RUSTUP_TOOLCHAIN% && "
    "echo ##vso[task.setvariable variable=PATH;]%PATH%;%USERPROFILE%\\.cargo\\bin"
)

WINDOWS_ENV = (
    "echo ##vso[task.setvariable variable=PLATFORM;]win64 && "
    "echo ##vso[task.setvariable variable=WIRESHARK_BASE_DIR;]C:/wireshark-libs"
)


def workflow():
    return pipeline(
        "rust-matrix",
        matrix=[
            axis(
                "IMAGE_NAME",
                windows=value("vs2017-win2016", AGENT_OS="Windows_NT"),
                mac=value("macos-10.13", AGENT_OS="Darwin"),
                linux=value("ubuntu-16.04", AGENT_OS="Linux"),
            ),
            axis("RUSTUP_TOOLCHAIN", ["stable", "nightly"]),
        ],
        steps=[
            step(
                "Install rust",
                variant(os_is_not("Windows_NT"), POSIX_INSTALL),
                variant(os_is("Windows_NT"), WINDOWS_INSTALL),
                timeout=15 * 60,
                publishes=["PATH"],
            ),
            sh(
                "Windows set environment variables",
                WINDOWS_ENV,
                when=os_is("Windows_NT"),
                publishes=["PLATFORM", "WIRESHARK_BASE_DIR"],
            ),
            sh("Cargo build", "cargo build --all --verbose", timeout=60 * 60),
            sh("Cargo test", "cargo test --all --verbose", timeout=60 * 60),
        ],
        on=triggers(
            push=["master"],
            pr=["master"],
            schedules=[schedule("0 0 * * *", ["master"], display_name="Daily midnight build")],
            batch=False,
        ),
    )
