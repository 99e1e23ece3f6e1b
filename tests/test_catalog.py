import os
from datetime import date

import pytest
from fastapi import status
from sqlalchemy import func, select

from bunyoro import crud, models
from bunyoro.core import get_settings
from bunyoro.exceptions import NotFound, TransactionFailure, ValidationError
from bunyoro.schemas import AlbumCreate, AudioTrackCreate
from bunyoro.storage import StoredBlob


MP3 = ("song.mp3", b"ID3\x03\x00fake-audio-bytes", "audio/mpeg")


def stored_audio_files():
    directory = os.path.join(get_settings().UPLOAD_DIR, "audio")
    return set(os.listdir(directory)) if os.path.isdir(directory) else set()


def test_default_genres_are_seeded_and_sorted(client):
    response = client.get("/genres")
    assert response.status_code == status.HTTP_200_OK
    names = [g["name"] for g in response.json()]
    assert names == sorted(names)
    assert {"Runyege", "Ekitaguriro", "Traditional Bunyoro"} <= set(names)


def test_seed_genres_only_fills_an_empty_table(db_session):
    assert crud.seed_genres(db_session) == 0


def test_admin_creates_genre_once(client, admin_headers):
    response = client.post(
        "/admin/genres", json={"name": "Amakondere"}, headers=admin_headers
    )
    assert response.status_code == status.HTTP_201_CREATED
    again = client.post(
        "/admin/genres", json={"name": "Amakondere"}, headers=admin_headers
    )
    assert again.status_code == status.HTTP_409_CONFLICT


def test_list_tracks_paginates_with_true_total(client, artist, make_track):
    user, _ = artist
    for n in range(25):
        make_track(user["id"], title=f"Track {n:02d}")

    first = client.get("/audio", params={"page": 1, "limit": 10}).json()
    assert first["pagination"] == {"page": 1, "limit": 10, "total": 25, "pages": 3}
    assert len(first["tracks"]) == 10
    # newest first
    assert first["tracks"][0]["title"] == "Track 24"

    last = client.get("/audio", params={"page": 3, "limit": 10}).json()
    assert len(last["tracks"]) == 5
    assert last["tracks"][-1]["title"] == "Track 00"


def test_list_tracks_includes_artist_and_genre_names(client, artist, make_track, genre_ids):
    user, _ = artist
    make_track(user["id"], title="Omwana", genre_ids=[genre_ids["Runyege"]])
    track = client.get("/audio").json()["tracks"][0]
    assert track["artist_name"] == "Kato Ruhweza"
    assert track["stage_name"] == "Kato R"
    assert track["genre_names"] == ["Runyege"]


def test_list_tracks_hides_non_public(client, artist, make_track):
    user, _ = artist
    make_track(user["id"], title="Public")
    make_track(user["id"], title="Hidden", visibility=models.Visibility.PRIVATE)
    make_track(user["id"], title="Link Only", visibility=models.Visibility.UNLISTED)
    data = client.get("/audio").json()
    assert [t["title"] for t in data["tracks"]] == ["Public"]
    assert data["pagination"]["total"] == 1


@pytest.mark.parametrize("term", ["OMUKAMA", "kato r", "ruhWEZA"])
def test_search_is_case_insensitive_over_title_and_artist(
    client, artist, make_track, term
):
    user, _ = artist
    make_track(user["id"], title="Omukama Wange")
    data = client.get("/audio", params={"search": term}).json()
    assert data["pagination"]["total"] == 1


def test_search_without_match_returns_empty_page(client, artist, make_track):
    user, _ = artist
    make_track(user["id"], title="Omukama Wange")
    data = client.get("/audio", params={"search": "zzz"}).json()
    assert data["tracks"] == []
    assert data["pagination"]["total"] == 0
    assert data["pagination"]["pages"] == 0


@pytest.mark.parametrize(
    "term, titles", [("%", ["100% Runyege"]), ("_", ["Ekyoto_Mix"])]
)
def test_search_treats_wildcards_literally(client, artist, make_track, term, titles):
    user, _ = artist
    make_track(user["id"], title="100% Runyege")
    make_track(user["id"], title="Ekyoto_Mix")
    make_track(user["id"], title="Omukama")
    data = client.get("/audio", params={"search": term}).json()
    assert [t["title"] for t in data["tracks"]] == titles
    assert data["pagination"]["total"] == 1


def test_genre_filter(client, artist, make_track, genre_ids):
    user, _ = artist
    make_track(user["id"], title="Dance", genre_ids=[genre_ids["Ekitaguriro"]])
    make_track(
        user["id"],
        title="Both",
        genre_ids=[genre_ids["Ekitaguriro"], genre_ids["Runyege"]],
    )
    make_track(user["id"], title="Plain")
    data = client.get("/audio", params={"genre": "Ekitaguriro"}).json()
    assert sorted(t["title"] for t in data["tracks"]) == ["Both", "Dance"]
    assert data["pagination"]["total"] == 2


@pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"limit": 101}])
def test_list_tracks_rejects_bad_paging(client, params):
    response = client.get("/audio", params=params)
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_list_tracks_bad_paging_in_domain_layer(db_session):
    with pytest.raises(ValidationError):
        crud.list_audio_tracks(db_session, page=-1)


def test_get_track_details(client, artist, make_track, genre_ids):
    user, headers = artist
    album = client.post(
        "/albums",
        json={"title": "Ebyaffe", "cover_art_url": "/covers/e.png"},
        headers=headers,
    ).json()
    track_id = make_track(
        user["id"],
        title="Kaliisoliiso",
        album_id=album["id"],
        genre_ids=[genre_ids["Runyege"], genre_ids["Cultural Fusion"]],
    )
    response = client.get(f"/audio/{track_id}")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["album_title"] == "Ebyaffe"
    assert data["album_cover"] == "/covers/e.png"
    assert data["genre_names"] == ["Cultural Fusion", "Runyege"]
    assert data["file_format"] == "mp3"


def test_get_missing_or_private_track_is_not_found(client, artist, make_track):
    user, _ = artist
    private_id = make_track(user["id"], visibility=models.Visibility.PRIVATE)
    assert client.get(f"/audio/{private_id}").status_code == status.HTTP_404_NOT_FOUND
    assert client.get("/audio/9999").status_code == status.HTTP_404_NOT_FOUND


def test_featured_tracks_by_plays_then_downloads(client, artist, make_track):
    user, _ = artist
    make_track(user["id"], title="Low", play_count=1)
    make_track(user["id"], title="Tied A", play_count=50, download_count=1)
    make_track(user["id"], title="Tied B", play_count=50, download_count=9)
    for n in range(5):
        make_track(user["id"], title=f"Mid {n}", play_count=10 + n)
    titles = [t["title"] for t in client.get("/audio/featured").json()]
    assert len(titles) == 6
    assert titles[:2] == ["Tied B", "Tied A"]
    assert "Low" not in titles


def test_popular_tracks_use_weighted_score(client, artist, make_track):
    user, _ = artist
    make_track(user["id"], title="Played", play_count=10, download_count=0)  # 7.0
    make_track(user["id"], title="Downloaded", play_count=0, download_count=30)  # 9.0
    make_track(user["id"], title="Mixed", play_count=5, download_count=10)  # 6.5
    data = client.get("/audio/popular", params={"limit": 3}).json()
    assert [t["title"] for t in data] == ["Downloaded", "Played", "Mixed"]
    assert data[0]["popularity_score"] == pytest.approx(9.0)


def test_upload_track_over_http(client, artist, genre_ids, db_session):
    _, headers = artist
    response = client.post(
        "/audio/upload",
        data={
            "title": "Ekyoto",
            "duration": "214",
            "release_date": "2024-05-01",
            "genre_ids": [str(genre_ids["Runyege"]), str(genre_ids["Modern Bunyoro"])],
        },
        files={"audio": MP3},
        headers=headers,
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    track_id = response.json()["id"]

    detail = client.get(f"/audio/{track_id}").json()
    assert detail["file_url"].startswith("/uploads/audio/audio-")
    assert detail["file_size"] == len(MP3[1])
    assert detail["processing_status"] == "pending"
    assert sorted(detail["genre_names"]) == ["Modern Bunyoro", "Runyege"]


def test_upload_rejects_unsupported_file_type(client, artist):
    _, headers = artist
    response = client.post(
        "/audio/upload",
        data={"title": "Bad", "duration": "10"},
        files={"audio": ("notes.txt", b"hello", "text/plain")},
        headers=headers,
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_listener_cannot_upload(client, listener):
    _, headers = listener
    response = client.post(
        "/audio/upload",
        data={"title": "Nope", "duration": "10"},
        files={"audio": MP3},
        headers=headers,
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_upload_with_unknown_genre_keeps_nothing(client, artist, genre_ids, db_session):
    _, headers = artist
    files_before = stored_audio_files()
    response = client.post(
        "/audio/upload",
        data={
            "title": "Orphan",
            "duration": "100",
            "genre_ids": [str(genre_ids["Runyege"]), "9999"],
        },
        files={"audio": MP3},
        headers=headers,
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    assert db_session.scalar(select(func.count(models.AudioTrack.id))) == 0
    assert db_session.scalar(select(func.count()).select_from(models.TrackGenre)) == 0
    assert stored_audio_files() == files_before


def test_upload_with_rejected_thumbnail_removes_stored_audio(client, artist, db_session):
    _, headers = artist
    files_before = stored_audio_files()
    response = client.post(
        "/audio/upload",
        data={"title": "Half", "duration": "100"},
        files={"audio": MP3, "thumbnail": ("cover.gif", b"GIF89a", "image/gif")},
        headers=headers,
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert stored_audio_files() == files_before
    assert db_session.scalar(select(func.count(models.AudioTrack.id))) == 0


def test_upload_into_another_artists_album_is_rejected(
    client, artist, register, db_session
):
    owner, _ = artist
    other, _ = register("other@example.com", role="artist", stage_name="Other")
    album = crud.create_album(
        db_session, owner["id"], AlbumCreate(title="Mine")
    )
    with pytest.raises(NotFound):
        crud.upload_audio_track(
            db_session,
            other["id"],
            AudioTrackCreate(title="Sneaky", duration=1, album_id=album.id),
            StoredBlob(url="/x.mp3", format="mp3", size=1),
        )
    assert db_session.scalar(select(func.count(models.AudioTrack.id))) == 0


def test_unknown_genre_in_domain_layer_is_transaction_failure(db_session, artist):
    user, _ = artist
    with pytest.raises(TransactionFailure):
        crud.upload_audio_track(
            db_session,
            user["id"],
            AudioTrackCreate(title="Bad", duration=1, genre_ids=[12345]),
            StoredBlob(url="/x.mp3", format="mp3", size=1),
        )
    assert db_session.scalar(select(func.count(models.AudioTrack.id))) == 0


def test_owner_changes_visibility(client, artist, register, make_track):
    user, headers = artist
    track_id = make_track(user["id"])
    response = client.patch(
        f"/audio/{track_id}", json={"visibility": "private"}, headers=headers
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["visibility"] == "private"
    assert client.get(f"/audio/{track_id}").status_code == status.HTTP_404_NOT_FOUND

    _, other_headers = register("other@example.com", role="artist", stage_name="O")
    forbidden = client.patch(
        f"/audio/{track_id}", json={"visibility": "public"}, headers=other_headers
    )
    assert forbidden.status_code == status.HTTP_403_FORBIDDEN


def test_album_lifecycle_keeps_tracks(client, artist, make_track, db_session):
    user, headers = artist
    created = client.post(
        "/albums",
        json={"title": "Engoma", "type": "ep", "release_date": "2023-01-01"},
        headers=headers,
    )
    assert created.status_code == status.HTTP_201_CREATED
    album_id = created.json()["id"]
    track_id = make_track(user["id"], title="On Album", album_id=album_id)

    detail = client.get(f"/albums/{album_id}").json()
    assert detail["type"] == "ep"
    assert [t["title"] for t in detail["tracks"]] == ["On Album"]
    listed = client.get(f"/artists/{user['id']}/albums").json()
    assert [a["title"] for a in listed] == ["Engoma"]

    deleted = client.delete(f"/albums/{album_id}", headers=headers)
    assert deleted.status_code == status.HTTP_204_NO_CONTENT
    track = db_session.get(models.AudioTrack, track_id)
    assert track is not None
    assert track.album_id is None


def test_video_upload_list_and_view(client, artist):
    _, headers = artist
    for n in range(14):
        response = client.post(
            "/videos",
            data={
                "title": f"Video {n}",
                "duration": "240",
                "youtube_url": f"https://youtu.be/{n}",
            },
            headers=headers,
        )
        assert response.status_code == status.HTTP_201_CREATED, response.text

    page = client.get("/videos").json()
    assert len(page["videos"]) == 12
    assert page["pagination"]["total"] == 14
    assert page["videos"][0]["title"] == "Video 13"
    assert page["videos"][0]["stage_name"] == "Kato R"

    video_id = page["videos"][0]["id"]
    viewed = client.post(f"/videos/{video_id}/view")
    assert viewed.json() == {"id": video_id, "count": 1}
    assert client.get(f"/videos/{video_id}").json()["view_count"] == 1


def test_video_file_upload(client, artist):
    _, headers = artist
    response = client.post(
        "/videos",
        data={"title": "Clip", "duration": "30"},
        files={"file": ("clip.mp4", b"\x00\x00\x00\x18ftypmp42", "video/mp4")},
        headers=headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["file_url"].startswith("/uploads/videos/")


def test_video_needs_link_or_file(client, artist):
    _, headers = artist
    response = client.post(
        "/videos", data={"title": "Empty", "duration": "30"}, headers=headers
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_release_date_defaults_to_upload_day(db_session, artist):
    user, _ = artist
    track_id = crud.upload_audio_track(
        db_session,
        user["id"],
        AudioTrackCreate(title="Today", duration=1),
        StoredBlob(url="/x.mp3", format="mp3", size=1),
    )
    assert isinstance(db_session.get(models.AudioTrack, track_id).release_date, date)
