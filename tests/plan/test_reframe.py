"""竖屏重构滤镜测试。"""

import pytest

from vidshorts.plan import ReframeSpec, build_reframe_chain


def test_default_chain_shape() -> None:
    chain = build_reframe_chain()

    assert chain == (
        "scale=-2:round((min(ih/0.85\\,1920)*0.85)/2)*2,"
        "crop=round((ih/0.85*9/16)/2)*2:ih:(iw-round((ih/0.85*9/16)/2)*2)/2:0,"
        "pad=iw:round((ih/0.85)/2)*2:0:(oh-ih)/2:black"
    )


@pytest.mark.parametrize("kwargs", [{"max_height": 0}, {"content_ratio": 0}, {"content_ratio": 1.2}])
def test_reframe_spec_validation(kwargs) -> None:
    with pytest.raises(ValueError):
        ReframeSpec(**kwargs)
